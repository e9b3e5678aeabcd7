"""
Agents

An Agent is an immutable definition (prompt, model, tools, response hook).
Calling `run` performs one turn: one model call, then every requested tool
call in order, then the response hook. Agents keep no per-run state, so one
definition can serve many runs at once.

Roster:
- code-agent:    builds and edits the app in a container; finishes by
                 emitting a <task_summary> marker
- design-agent:  design helper (placeholder tools)
- general-agent: classifies the user's message for routing
"""

from __future__ import annotations
from typing import Callable, List, Optional, Tuple
from dataclasses import dataclass
import logging

from pydantic import ValidationError

import code_gen_config as config
from container import ContainerCreationError

from .llm import LLMClient, ModelBinding
from .markers import (
    RoutingFallback,
    RoutingParseError,
    extract_task_summary,
    fallback_decision,
    parse_routing_decision,
)
from .prompts import (
    CODE_AGENT_PROMPT,
    DESIGN_AGENT_PROMPT,
    ROUTING_AGENT_PROMPT,
    build_state_context,
)
from .state import AgentResult, Message, RunState, ToolCall, ToolCallResult
from .tools import CODE_AGENT_TOOLS, DESIGN_AGENT_TOOLS, ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

CODE_AGENT_NAME = "code-agent"
DESIGN_AGENT_NAME = "design-agent"
GENERAL_AGENT_NAME = "general-agent"

# Max content length for tool results (truncate if longer)
MAX_TOOL_RESULT_LENGTH = 20000

ResponseHook = Callable[[AgentResult, RunState], None]


# ============================================
# Agent Definition
# ============================================

@dataclass(frozen=True)
class Agent:
    name: str
    description: str
    system_prompt: str
    model: ModelBinding
    tools: Tuple[ToolDefinition, ...] = ()
    on_response: Optional[ResponseHook] = None

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    async def run(self, state: RunState, llm: LLMClient, tool_context: ToolContext) -> AgentResult:
        """
        Run one turn against the shared state.

        Args:
            state: The run's state (mutated in place)
            llm: Model client
            tool_context: Context handed to tool handlers

        Returns:
            The turn's result, already recorded in `state`

        Raises:
            ContainerCreationError: a tool could not create its container
        """
        system_prompt = self.system_prompt
        if self.tools:
            system_prompt += build_state_context(state)

        response = await llm.complete(
            self.model,
            system_prompt,
            state.to_api_messages(),
            [tool.to_claude_tool() for tool in self.tools] or None,
        )

        result = AgentResult(agent_name=self.name)
        for block in response.content:
            if block.type == "text":
                result.output.append(Message(role="assistant", content=block.text))
            elif block.type == "tool_use":
                result.output.append(ToolCall(id=block.id, name=block.name, input=dict(block.input or {})))

        tool_calls = result.tool_calls
        if tool_calls:
            logger.info(f"[Agent] {self.name} calling tools: {[c.name for c in tool_calls]}")
        for call in tool_calls:
            result.tool_results.append(await self._execute_tool(call, tool_context))

        state.record(result)

        if self.on_response:
            self.on_response(result, state)

        return result

    async def _execute_tool(self, call: ToolCall, context: ToolContext) -> ToolCallResult:
        """Execute one tool call; every failure except container creation becomes an error result"""
        tool = self.get_tool(call.name)
        if tool is None:
            logger.warning(f"[Agent] {self.name} requested unknown tool: {call.name}")
            return ToolCallResult(call.id, call.name, f"Error: Unknown tool: {call.name}", is_error=True)

        try:
            params = tool.parse_args(call.input)
        except ValidationError as e:
            logger.warning(f"[Agent] Invalid arguments for {call.name}: {e}")
            return ToolCallResult(call.id, call.name, f"Error: Invalid arguments for {call.name}: {e}", is_error=True)

        try:
            tool_result = await tool.invoke(params, context)
        except ContainerCreationError:
            raise
        except Exception as e:
            logger.error(f"[Agent] Tool {call.name} failed: {e}", exc_info=True)
            return ToolCallResult(call.id, call.name, f"Error: {e}", is_error=True)

        content = tool_result.to_content()
        if len(content) > MAX_TOOL_RESULT_LENGTH:
            content = content[:MAX_TOOL_RESULT_LENGTH] + "\n\n... (truncated, too long)"

        return ToolCallResult(call.id, call.name, content, is_error=not tool_result.success)


# ============================================
# Response Hooks
# ============================================

def record_task_summary(result: AgentResult, state: RunState):
    """Stop signal: store the <task_summary> block from the turn's first text item"""
    summary = extract_task_summary(result.first_assistant_text())
    if summary and not state.summary:
        state.set_summary(summary)
        logger.info(f"[Agent] Task summary recorded ({len(summary)} chars)")


def routing_hook(fallback: RoutingFallback) -> ResponseHook:
    """Build the routing agent's hook for the given parse-failure policy"""

    def record_routing_decision(result: AgentResult, state: RunState):
        text = result.first_assistant_text() or ""
        try:
            decision = parse_routing_decision(text)
        except RoutingParseError as e:
            logger.warning(f"[Agent] Routing reply not parseable ({e}); fallback={fallback.value}")
            decision = fallback_decision(text, fallback)

        if decision is None:
            return

        state.routing_decision = decision
        state.data["conversationType"] = decision.conversation_type.value
        state.data["routingReason"] = decision.reason
        state.data["routingMessage"] = decision.message
        logger.info(f"[Agent] Routing to: {decision.conversation_type.value} - {decision.reason}")

    return record_routing_decision


# ============================================
# Agent Factories
# ============================================

def default_binding() -> ModelBinding:
    return ModelBinding(model=config.AGENT_MODEL, max_tokens=config.AGENT_MAX_TOKENS)


def routing_binding() -> ModelBinding:
    return ModelBinding(model=config.ROUTING_MODEL, max_tokens=config.ROUTING_MAX_TOKENS)


def create_code_agent(model: Optional[ModelBinding] = None) -> Agent:
    return Agent(
        name=CODE_AGENT_NAME,
        description="An expert coding agent",
        system_prompt=CODE_AGENT_PROMPT,
        model=model or default_binding(),
        tools=tuple(CODE_AGENT_TOOLS),
        on_response=record_task_summary,
    )


def create_design_agent(model: Optional[ModelBinding] = None) -> Agent:
    return Agent(
        name=DESIGN_AGENT_NAME,
        description="An expert design agent with an eye for detail",
        system_prompt=DESIGN_AGENT_PROMPT,
        model=model or default_binding(),
        tools=tuple(DESIGN_AGENT_TOOLS),
    )


def create_general_agent(
    model: Optional[ModelBinding] = None,
    fallback: Optional[RoutingFallback] = None,
) -> Agent:
    return Agent(
        name=GENERAL_AGENT_NAME,
        description="Routing agent that determines the conversation type and answers general questions",
        system_prompt=ROUTING_AGENT_PROMPT,
        model=model or routing_binding(),
        on_response=routing_hook(fallback or RoutingFallback(config.ROUTING_FALLBACK)),
    )


def create_agents(
    model: Optional[ModelBinding] = None,
    fallback: Optional[RoutingFallback] = None,
) -> List[Agent]:
    """Full roster, in selection order"""
    return [
        create_code_agent(model),
        create_design_agent(model),
        create_general_agent(fallback=fallback),
    ]
