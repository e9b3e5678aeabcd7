from __future__ import annotations

import pytest

from agent.agents import create_code_agent, create_design_agent, create_general_agent
from agent.llm import ContentBlock, ModelBinding, ModelResponse
from agent.markers import ConversationType, RoutingFallback
from agent.state import CONTINUE_PROMPT, AgentResult, Message, RunState
from container import CommandResult, ContainerCreationError

from conftest import FakeLLM, text_response, tool_response

BINDING = ModelBinding(model="test-model", max_tokens=1024)


@pytest.mark.asyncio
async def test_code_agent_runs_tools_and_records_turn(state, tool_context, gateway) -> None:
    state.add_user_message("build a todo app")
    llm = FakeLLM([tool_response("writeOrUpdateFiles", {
        "containerName": "box",
        "files": [{"path": "src/App.tsx", "content": "app"}],
    })])

    result = await create_code_agent(BINDING).run(state, llm, tool_context)

    assert state.results == [result]
    assert state.files == {"src/App.tsx": "app"}
    assert result.tool_results[0].is_error is False
    assert "Successfully wrote 1 file(s)" in result.tool_results[0].content

    call = llm.calls[0]
    assert call["model"] == "test-model"
    assert {t["name"] for t in call["tools"]} >= {"writeOrUpdateFiles", "terminal"}
    assert call["messages"] == [{"role": "user", "content": "build a todo app"}]

    follow_up = state.to_api_messages()
    assert follow_up[-2]["role"] == "assistant"
    assert follow_up[-2]["content"][0]["type"] == "tool_use"
    assert follow_up[-1]["content"][0]["type"] == "tool_result"
    assert follow_up[-1]["content"][0]["tool_use_id"] == "call-1"


@pytest.mark.asyncio
async def test_code_agent_records_tag_inclusive_summary(state, tool_context) -> None:
    state.add_user_message("build it")
    llm = FakeLLM([text_response("Done!\n<task_summary>Built a blog.</task_summary>")])

    await create_code_agent(BINDING).run(state, llm, tool_context)

    assert state.summary == "<task_summary>Built a blog.</task_summary>"


@pytest.mark.asyncio
async def test_summary_only_read_from_first_output_item(state, tool_context) -> None:
    state.add_user_message("build it")
    response = ModelResponse(
        content=[
            ContentBlock("tool_use", id="c1", name="checkForErrors", input={"containerName": "box"}),
            ContentBlock("text", text="<task_summary>early</task_summary>"),
        ],
        stop_reason="tool_use",
    )

    await create_code_agent(BINDING).run(state, FakeLLM([response]), tool_context)

    assert state.summary == ""


@pytest.mark.asyncio
async def test_summary_is_never_overwritten(state, tool_context) -> None:
    state.add_user_message("build it")
    state.set_summary("<task_summary>first</task_summary>")

    await create_code_agent(BINDING).run(
        state, FakeLLM([text_response("<task_summary>second</task_summary>")]), tool_context
    )

    assert state.summary == "<task_summary>first</task_summary>"


@pytest.mark.asyncio
async def test_invalid_tool_arguments_become_error_result(state, tool_context, gateway) -> None:
    state.add_user_message("build it")
    llm = FakeLLM([tool_response("writeOrUpdateFiles", {"containerName": "box"})])

    result = await create_code_agent(BINDING).run(state, llm, tool_context)

    tool_result = result.tool_results[0]
    assert tool_result.is_error
    assert tool_result.content.startswith("Error: Invalid arguments for writeOrUpdateFiles")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_unknown_tool_becomes_error_result(state, tool_context) -> None:
    state.add_user_message("design it")
    llm = FakeLLM([tool_response("terminal", {"containerName": "box", "command": "ls"})])

    result = await create_design_agent(BINDING).run(state, llm, tool_context)

    assert result.tool_results[0].is_error
    assert result.tool_results[0].content == "Error: Unknown tool: terminal"


@pytest.mark.asyncio
async def test_container_creation_error_propagates(state, tool_context, gateway) -> None:
    state.add_user_message("build it")
    gateway.fail.add("create_container")
    llm = FakeLLM([tool_response("createAndStartContainer", {"containerName": "box", "templateName": "vite-react"})])

    with pytest.raises(ContainerCreationError):
        await create_code_agent(BINDING).run(state, llm, tool_context)


@pytest.mark.asyncio
async def test_failed_tools_run_in_order(state, tool_context, gateway) -> None:
    state.add_user_message("build it")
    gateway.fail.add("read_path_tree")
    response = ModelResponse(
        content=[
            ContentBlock("tool_use", id="c1", name="readPathTree", input={"containerName": "box", "path": "."}),
            ContentBlock("tool_use", id="c2", name="checkForErrors", input={"containerName": "box"}),
        ],
        stop_reason="tool_use",
    )

    result = await create_code_agent(BINDING).run(state, FakeLLM([response]), tool_context)

    assert gateway.operations() == ["read_path_tree", "check_for_errors"]
    assert [r.is_error for r in result.tool_results] == [True, False]


@pytest.mark.asyncio
async def test_code_agent_prompt_includes_state(state, tool_context) -> None:
    state.add_user_message("update it")
    state.data["containerName"] = "box-42"
    state.data["containerPreviewURL"] = "https://box-42.example.com"
    llm = FakeLLM()

    await create_code_agent(BINDING).run(state, llm, tool_context)

    prompt = llm.calls[0]["system_prompt"]
    assert "Container: box-42" in prompt
    assert "Preview URL: https://box-42.example.com" in prompt


@pytest.mark.asyncio
async def test_routing_agent_records_decision(state, tool_context) -> None:
    state.add_user_message("add dark mode")
    reply = (
        "<conversation_type>UPDATE_FRAGMENT</conversation_type>"
        "<routing_reason>User wants to modify existing code</routing_reason>"
        "<message>I'll update that!</message>"
    )
    llm = FakeLLM([text_response(reply)])

    await create_general_agent(BINDING).run(state, llm, tool_context)

    assert llm.calls[0]["tools"] is None
    assert state.routing_decision.conversation_type == ConversationType.UPDATE_FRAGMENT
    assert state.data["conversationType"] == "UPDATE_FRAGMENT"
    assert state.data["routingReason"] == "User wants to modify existing code"
    assert state.data["routingMessage"] == "I'll update that!"


@pytest.mark.asyncio
async def test_routing_agent_drop_policy(state, tool_context) -> None:
    state.add_user_message("hi")
    agent = create_general_agent(BINDING, fallback=RoutingFallback.DROP)

    await agent.run(state, FakeLLM([text_response("Hello! How can I help?")]), tool_context)

    assert state.routing_decision is None
    assert "conversationType" not in state.data


@pytest.mark.asyncio
async def test_routing_agent_general_chat_policy(state, tool_context) -> None:
    state.add_user_message("hi")
    agent = create_general_agent(BINDING, fallback=RoutingFallback.GENERAL_CHAT)

    await agent.run(state, FakeLLM([text_response("Hello! How can I help?")]), tool_context)

    assert state.routing_decision.conversation_type == ConversationType.GENERAL_CHAT
    assert state.data["routingMessage"] == "Hello! How can I help?"


def test_api_messages_nudge_after_assistant_text() -> None:
    state = RunState(messages=[
        Message(role="user", content="build a landing page"),
        Message(role="assistant", content="<task_summary>Built it.</task_summary>"),
    ])
    state.add_user_message("now add a pricing section")

    messages = state.to_api_messages()

    assert [m["role"] for m in messages] == ["user", "assistant", "user"]

    state.messages = [Message(role="user", content="go")]
    state.results = []
    state.record(AgentResult(agent_name="code-agent", output=[Message(role="assistant", content="thinking")]))

    messages = state.to_api_messages()

    assert messages[-1] == {"role": "user", "content": CONTINUE_PROMPT}


@pytest.mark.asyncio
async def test_turn_text_is_appended_to_transcript(state, tool_context) -> None:
    state.messages = [Message(role="user", content="earlier request"), Message(role="assistant", content="earlier reply")]
    state.add_user_message("build")
    llm = FakeLLM([text_response("hello"), tool_response("checkForErrors", {"containerName": "box"})])
    agent = create_code_agent(BINDING)

    await agent.run(state, llm, tool_context)
    await agent.run(state, llm, tool_context)

    assert [(m.role, m.content) for m in state.messages] == [
        ("user", "earlier request"),
        ("assistant", "earlier reply"),
        ("user", "build"),
        ("assistant", "hello"),
    ]
    assert state.transcript() == state.messages

    rendered = state.to_api_messages()
    assert [m["role"] for m in rendered] == ["user", "assistant", "user", "assistant", "user", "assistant", "user"]
    assert rendered[4] == {"role": "user", "content": CONTINUE_PROMPT}
    assert llm.calls[1]["messages"] == rendered[:5]
    assert sum(1 for m in rendered if m["content"] == [{"type": "text", "text": "hello"}]) == 1


@pytest.mark.asyncio
async def test_handler_failure_is_not_reported_as_bad_arguments(state, tool_context, gateway) -> None:
    async def malformed(container_name, argv):
        return CommandResult.model_validate({"exitCode": "not-a-number"})

    gateway.execute_command = malformed
    state.add_user_message("run the tests")
    llm = FakeLLM([tool_response("terminal", {"containerName": "box", "command": "npm test"})])

    result = await create_code_agent(BINDING).run(state, llm, tool_context)

    tool_result = result.tool_results[0]
    assert tool_result.is_error
    assert tool_result.content.startswith("Error: ")
    assert "Invalid arguments" not in tool_result.content
