from __future__ import annotations

import pytest

from agent.agents import create_code_agent, create_general_agent
from agent.llm import ModelBinding
from agent.network import (
    STOPPED_BY_MAX_ITERATIONS,
    STOPPED_BY_ROUTER,
    STOPPED_BY_SUMMARY,
    Network,
    RunAgent,
    Stop,
    fixed_agent_router,
    resolve_preview_url,
)
from agent.state import RunState

from conftest import FakeLLM, text_response, tool_response

BINDING = ModelBinding(model="test-model", max_tokens=1024)


def _network(llm: FakeLLM, gateway, max_iterations: int = 5, **kwargs) -> Network:
    return Network(
        name="test-network",
        agents=[create_code_agent(BINDING), create_general_agent(BINDING)],
        llm=llm,
        max_iterations=max_iterations,
        gateway=gateway,
        start_settle_seconds=0,
        preview_settle_seconds=0,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_network_stops_when_summary_is_written(gateway) -> None:
    llm = FakeLLM([
        tool_response("writeOrUpdateFiles", {
            "containerName": "box",
            "files": [{"path": "src/App.tsx", "content": "app"}],
        }),
        text_response("checking"),
        text_response("<task_summary>Built a counter.</task_summary>"),
    ])

    run = await _network(llm, gateway).run("build a counter")

    assert run.iterations == 3
    assert run.stopped_by == STOPPED_BY_SUMMARY
    assert run.state.summary == "<task_summary>Built a counter.</task_summary>"
    assert len(llm.calls) == 3
    assert all(call["tools"] for call in llm.calls)


@pytest.mark.asyncio
async def test_network_cap_is_a_normal_stop(gateway) -> None:
    llm = FakeLLM(default=text_response("still working"))

    run = await _network(llm, gateway, max_iterations=4).run("build it")

    assert run.iterations == 4
    assert run.stopped_by == STOPPED_BY_MAX_ITERATIONS
    assert run.state.summary == ""
    assert len(run.state.results) == 4


@pytest.mark.asyncio
async def test_summary_on_last_allowed_turn_reports_summary(gateway) -> None:
    llm = FakeLLM([text_response("one"), text_response("<task_summary>done</task_summary>")])

    run = await _network(llm, gateway, max_iterations=2).run("build it")

    assert run.iterations == 2
    assert run.stopped_by == STOPPED_BY_SUMMARY


@pytest.mark.asyncio
async def test_network_uses_given_state(gateway) -> None:
    state = RunState()
    state.data["containerName"] = "box-7"
    network = _network(FakeLLM([text_response("<task_summary>ok</task_summary>")]), gateway)

    run = await network.run("fix the header", state)

    assert run.state is state
    assert network.state is not state
    assert state.messages[-1].content == "fix the header"


@pytest.mark.asyncio
async def test_fixed_router_runs_named_agent(gateway) -> None:
    reply = (
        "<conversation_type>BUILD_FRAGMENT</conversation_type>"
        "<routing_reason>New app</routing_reason>"
        "<message>Building it!</message>"
    )
    llm = FakeLLM([text_response(reply)])
    network = _network(llm, gateway, max_iterations=1, router=fixed_agent_router("general-agent"))

    run = await network.run("make me a blog")

    assert run.iterations == 1
    assert llm.calls[0]["tools"] is None
    assert run.state.routing_decision.message == "Building it!"


@pytest.mark.asyncio
async def test_router_stop(gateway) -> None:
    llm = FakeLLM()
    network = _network(llm, gateway, router=lambda inp: Stop())

    run = await network.run("hi")

    assert run.iterations == 0
    assert run.stopped_by == STOPPED_BY_ROUTER
    assert llm.calls == []


@pytest.mark.asyncio
async def test_router_sees_iteration_count(gateway) -> None:
    seen = []

    def router(inp):
        seen.append(inp.iteration)
        return Stop() if inp.iteration == 2 else RunAgent("code-agent")

    run = await _network(FakeLLM(), gateway, router=router).run("go")

    assert seen == [0, 1, 2]
    assert run.iterations == 2


@pytest.mark.asyncio
async def test_router_selecting_unknown_agent_raises(gateway) -> None:
    network = _network(FakeLLM(), gateway, router=fixed_agent_router("nobody"))

    with pytest.raises(ValueError, match="unknown agent"):
        await network.run("go")


def test_max_iterations_must_be_positive(gateway) -> None:
    with pytest.raises(ValueError):
        _network(FakeLLM(), gateway, max_iterations=0)


def test_resolve_preview_url_precedence() -> None:
    run_state = RunState()
    network_state = RunState()
    network_state.data["containerPreviewURL"] = "https://x"

    assert resolve_preview_url(run_state, network_state) == "https://x"
    assert resolve_preview_url(run_state, RunState(), fallback="https://old") == "https://old"
    assert resolve_preview_url(RunState()) is None

    run_state.data["containerPreviewURL"] = "https://run"
    assert resolve_preview_url(run_state, network_state, fallback="https://old") == "https://run"
