"""
Agent Network
Agent 网络

Drives agents over one shared RunState until the run is done:

    RUNNING --(summary set | router says Stop | max_iterations)--> STOPPED

Each iteration re-reads the state before choosing an agent, so whichever
agent writes the summary ends the run. Hitting max_iterations is a normal
stop; the partial state is still returned.
"""

from __future__ import annotations
from typing import Callable, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
import logging

import code_gen_config as config
from container import ContainerGateway

from .agents import Agent
from .llm import LLMClient
from .state import RunState
from .tools import ToolContext

logger = logging.getLogger(__name__)

STOPPED_BY_SUMMARY = "summary"
STOPPED_BY_ROUTER = "router"
STOPPED_BY_MAX_ITERATIONS = "max_iterations"


# ============================================
# Router Decisions
# ============================================

@dataclass(frozen=True)
class Stop:
    reason: str = STOPPED_BY_ROUTER


@dataclass(frozen=True)
class RunAgent:
    name: str


RouterDecision = Union[Stop, RunAgent]


@dataclass(frozen=True)
class RouterInput:
    state: RunState
    iteration: int
    agents: Tuple[Agent, ...]


Router = Callable[[RouterInput], RouterDecision]


def first_agent_router(inp: RouterInput) -> RouterDecision:
    """Run the first agent of the roster until a summary exists"""
    if inp.state.summary:
        return Stop(STOPPED_BY_SUMMARY)
    if not inp.agents:
        return Stop()
    return RunAgent(inp.agents[0].name)


def fixed_agent_router(name: str) -> Router:
    """Always run the named agent"""

    def route(inp: RouterInput) -> RouterDecision:
        return RunAgent(name)

    return route


# ============================================
# Network
# ============================================

@dataclass
class NetworkRun:
    """Outcome of Network.run"""
    state: RunState
    iterations: int
    stopped_by: str


class Network:

    def __init__(
        self,
        name: str,
        agents: Sequence[Agent],
        llm: LLMClient,
        max_iterations: int,
        gateway: Optional[ContainerGateway] = None,
        router: Router = first_agent_router,
        default_state: Optional[RunState] = None,
        start_settle_seconds: Optional[float] = None,
        preview_settle_seconds: Optional[float] = None,
    ):
        """
        Args:
            name: Network name (for logs)
            agents: Roster, in selection order
            llm: Model client shared by all agents
            max_iterations: Hard cap on agent turns
            gateway: Container service client for tools
            router: Picks the next agent each iteration
            default_state: State used when run() is not given one
            start_settle_seconds: Wait after starting a container
            preview_settle_seconds: Wait after fetching a preview URL
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.name = name
        self.agents: Tuple[Agent, ...] = tuple(agents)
        self.llm = llm
        self.max_iterations = max_iterations
        self.gateway = gateway
        self.router = router
        self.state = default_state or RunState()
        self.start_settle_seconds = (
            config.CONTAINER_START_SETTLE_SECONDS if start_settle_seconds is None else start_settle_seconds
        )
        self.preview_settle_seconds = (
            config.PREVIEW_URL_SETTLE_SECONDS if preview_settle_seconds is None else preview_settle_seconds
        )

    def get_agent(self, name: str) -> Optional[Agent]:
        for agent in self.agents:
            if agent.name == name:
                return agent
        return None

    async def run(self, message: str, state: Optional[RunState] = None) -> NetworkRun:
        """
        Run agents until the run stops.

        Args:
            message: The user's message, appended to the transcript
            state: State to run against (defaults to the network's own)

        Raises:
            ContainerCreationError: propagated from the code agent's tools
        """
        run_state = state or self.state
        run_state.add_user_message(message)

        tool_context = ToolContext(
            state=run_state,
            gateway=self.gateway,
            start_settle_seconds=self.start_settle_seconds,
            preview_settle_seconds=self.preview_settle_seconds,
        )

        logger.info(f"[Network] {self.name} started (max_iterations={self.max_iterations})")

        iteration = 0
        stopped_by = STOPPED_BY_MAX_ITERATIONS

        while iteration < self.max_iterations:
            if run_state.summary:
                stopped_by = STOPPED_BY_SUMMARY
                break

            decision = self.router(RouterInput(run_state, iteration, self.agents))
            if isinstance(decision, Stop):
                stopped_by = decision.reason
                break

            agent = self.get_agent(decision.name)
            if agent is None:
                raise ValueError(f"Router selected unknown agent: {decision.name}")

            logger.info(f"[Network] {self.name} iteration {iteration + 1}: {agent.name}")
            await agent.run(run_state, self.llm, tool_context)
            iteration += 1

        if stopped_by == STOPPED_BY_MAX_ITERATIONS and run_state.summary:
            stopped_by = STOPPED_BY_SUMMARY

        if stopped_by == STOPPED_BY_MAX_ITERATIONS and self.max_iterations > 1:
            logger.warning(f"[Network] {self.name} hit max iterations ({self.max_iterations}) without a summary")
        else:
            logger.info(f"[Network] {self.name} stopped after {iteration} iteration(s): {stopped_by}")

        return NetworkRun(state=run_state, iterations=iteration, stopped_by=stopped_by)


def resolve_preview_url(
    run_state: RunState,
    network_state: Optional[RunState] = None,
    fallback: Optional[str] = None,
) -> Optional[str]:
    """First non-empty preview URL: the run's, then the network's, then the fallback"""
    candidates: List[Optional[str]] = [run_state.container_preview_url]
    if network_state is not None:
        candidates.append(network_state.container_preview_url)
    candidates.append(fallback)
    for url in candidates:
        if url:
            return url
    return None
