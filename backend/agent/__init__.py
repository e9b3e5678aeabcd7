"""
Agent Module
Agent 模块

Agents, their tools, and the network that drives them over a shared run state.
"""

from .agents import (
    Agent,
    CODE_AGENT_NAME,
    DESIGN_AGENT_NAME,
    GENERAL_AGENT_NAME,
    create_agents,
    create_code_agent,
    create_design_agent,
    create_general_agent,
)
from .llm import LLMClient, ModelBinding, create_llm_client
from .markers import ConversationType, RoutingDecision, RoutingFallback
from .network import Network, NetworkRun, first_agent_router, fixed_agent_router, resolve_preview_url
from .state import Message, RunState

__all__ = [
    "Agent",
    "CODE_AGENT_NAME",
    "DESIGN_AGENT_NAME",
    "GENERAL_AGENT_NAME",
    "create_agents",
    "create_code_agent",
    "create_design_agent",
    "create_general_agent",
    "LLMClient",
    "ModelBinding",
    "create_llm_client",
    "ConversationType",
    "RoutingDecision",
    "RoutingFallback",
    "Network",
    "NetworkRun",
    "first_agent_router",
    "fixed_agent_router",
    "resolve_preview_url",
    "Message",
    "RunState",
]
