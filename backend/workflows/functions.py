"""
Workflow Functions
工作流函数

Event handlers that run the agent networks:

- process_message:                  classify a user message, record the routing
                                    decision, hand off to a code workflow
- build_initial_fragment:           build a new app from scratch
- update_existing_fragment:         change an existing app
- fix_errors_in_existing_fragment:  fix a reported problem in an existing app

Every run gets a fresh Network and RunState. The code workflows return
{url, title, files?, summary} and persist it to the conversation.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import logging

import code_gen_config as config
from agent import (
    Agent,
    ConversationType,
    LLMClient,
    Message,
    Network,
    RoutingFallback,
    RunState,
    create_agents,
    create_general_agent,
    fixed_agent_router,
    resolve_preview_url,
)
from container import ContainerGateway
from conversation import (
    Conversation,
    ConversationStore,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PROCESSING,
)

from .events import (
    BUILD_INITIAL_FRAGMENT,
    DEFAULT_TEMPLATE_NAME,
    FIX_ERRORS_IN_EXISTING_FRAGMENT,
    PROCESS_MESSAGE,
    UPDATE_EXISTING_FRAGMENT,
    EventBus,
    FragmentEvent,
    ProcessMessageEvent,
)

logger = logging.getLogger(__name__)

INITIAL_FRAGMENT_TITLE = "InitialFragment"
FRAGMENT_TITLE = "Fragment"
CREATE_CONTAINER_TOOL = "createAndStartContainer"

# Code workflow triggered by each routing decision (none for general chat)
DOWNSTREAM_EVENTS = {
    ConversationType.BUILD_FRAGMENT: BUILD_INITIAL_FRAGMENT,
    ConversationType.UPDATE_FRAGMENT: UPDATE_EXISTING_FRAGMENT,
    ConversationType.FIX_ERRORS: FIX_ERRORS_IN_EXISTING_FRAGMENT,
}


class ConversationNotFoundError(LookupError):
    pass


def started_container_name(state: RunState) -> Optional[str]:
    """Container started by the last successful createAndStartContainer call of the run"""
    name = None
    for result in state.results:
        outcomes = {r.tool_use_id: r for r in result.tool_results}
        for call in result.tool_calls:
            outcome = outcomes.get(call.id)
            if call.name == CREATE_CONTAINER_TOOL and outcome is not None and not outcome.is_error:
                name = call.input.get("containerName") or name
    return name


@dataclass
class FragmentResult:
    """Outcome of a code workflow"""
    url: Optional[str]
    title: str
    summary: str
    files: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"url": self.url, "title": self.title, "summary": self.summary}
        if self.files is not None:
            result["files"] = self.files
        return result


class FragmentWorkflows:
    """
    The four workflow functions, bound to their collaborators
    工作流函数集合
    """

    def __init__(
        self,
        llm: LLMClient,
        gateway: ContainerGateway,
        store: ConversationStore,
        bus: EventBus,
        agents: Optional[List[Agent]] = None,
        routing_fallback: Optional[RoutingFallback] = None,
        code_max_iterations: Optional[int] = None,
        routing_max_iterations: Optional[int] = None,
        start_settle_seconds: Optional[float] = None,
        preview_settle_seconds: Optional[float] = None,
    ):
        """
        Args:
            llm: Model client for every agent
            gateway: Container service client
            store: Conversation persistence
            bus: Event bus used to hand routed messages to the code workflows
            agents: Roster for the code networks (defaults to code, design, general)
            routing_fallback: Policy for unparseable routing replies
            code_max_iterations: Cap for code networks
            routing_max_iterations: Cap for the routing network
            start_settle_seconds: Wait after starting a container
            preview_settle_seconds: Wait after fetching a preview URL
        """
        self.llm = llm
        self.gateway = gateway
        self.store = store
        self.bus = bus

        fallback = routing_fallback or RoutingFallback(config.ROUTING_FALLBACK)
        self.routing_agent = create_general_agent(fallback=fallback)
        self.agents = agents or create_agents(fallback=fallback)

        self.code_max_iterations = code_max_iterations or config.CODE_NETWORK_MAX_ITERATIONS
        self.routing_max_iterations = routing_max_iterations or config.ROUTING_NETWORK_MAX_ITERATIONS
        self.start_settle_seconds = start_settle_seconds
        self.preview_settle_seconds = preview_settle_seconds

    # ============================================
    # Code Workflows
    # ============================================

    async def build_initial_fragment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        event = FragmentEvent.model_validate(data)
        result = await self._run_code_network(event, title=INITIAL_FRAGMENT_TITLE, continue_conversation=False)
        return result.to_dict()

    async def update_existing_fragment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        event = FragmentEvent.model_validate(data)
        result = await self._run_code_network(event, title=FRAGMENT_TITLE, continue_conversation=True)
        return result.to_dict()

    async def fix_errors_in_existing_fragment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        event = FragmentEvent.model_validate(data)
        result = await self._run_code_network(event, title=FRAGMENT_TITLE, continue_conversation=True)
        return result.to_dict()

    async def _run_code_network(
        self,
        event: FragmentEvent,
        title: str,
        continue_conversation: bool,
    ) -> FragmentResult:
        """
        Run the coding network for one event and persist its result.

        Args:
            event: Fragment event
            title: Result title
            continue_conversation: Seed the earlier transcript and container,
                and return the written files
        """
        conversation = self._get_conversation(event.conversation_id)

        state = RunState()
        if continue_conversation:
            state.messages = self._prior_transcript(conversation, exclude_message_id=event.message_id)
            if conversation.container_name:
                state.data["containerName"] = conversation.container_name

        network = Network(
            name="coding-agent-network",
            agents=self.agents,
            llm=self.llm,
            max_iterations=self.code_max_iterations,
            gateway=self.gateway,
            default_state=state,
            start_settle_seconds=self.start_settle_seconds,
            preview_settle_seconds=self.preview_settle_seconds,
        )

        logger.info(
            f"[Workflow] {title} run for conversation {event.conversation_id} "
            f"(template={event.template_name or DEFAULT_TEMPLATE_NAME}, history={len(state.messages)})"
        )
        self.store.update_conversation(event.conversation_id, status=STATUS_PROCESSING)

        try:
            run = await network.run(event.message, state)

            result = FragmentResult(
                url=resolve_preview_url(run.state, network.state, fallback=conversation.preview_url),
                title=title,
                summary=run.state.summary,
                files=dict(run.state.files) if continue_conversation else None,
            )

            self.store.add_message(
                event.conversation_id,
                role="assistant",
                content=result.summary,
                metadata={
                    "fragment": {"url": result.url, "title": result.title},
                    "iterations": run.iterations,
                    "stoppedBy": run.stopped_by,
                },
            )
            self.store.save_fragment(event.conversation_id, result.to_dict())
            self.store.update_conversation(
                event.conversation_id,
                status=STATUS_COMPLETED,
                container_name=started_container_name(run.state) or run.state.container_name,
            )
        except Exception as e:
            logger.error(f"[Workflow] {title} run failed for {event.conversation_id}: {e}", exc_info=True)
            self.store.update_conversation(event.conversation_id, status=STATUS_FAILED)
            raise

        logger.info(
            f"[Workflow] {title} run finished: {run.iterations} iteration(s), "
            f"stopped_by={run.stopped_by}, url={result.url}"
        )
        return result

    # ============================================
    # Routing Workflow
    # ============================================

    async def process_message(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Classify a message and hand it to the matching code workflow.

        Returns:
            {conversationType, routingReason, message, routed}
        """
        event = ProcessMessageEvent.model_validate(data)
        conversation = self._get_conversation(event.conversation_id)

        state = RunState()
        state.messages = self._prior_transcript(conversation, exclude_message_id=event.message_id)

        network = Network(
            name="routing-network",
            agents=[self.routing_agent],
            llm=self.llm,
            max_iterations=self.routing_max_iterations,
            router=fixed_agent_router(self.routing_agent.name),
            default_state=state,
        )

        try:
            run = await network.run(event.message, state)
            decision = run.state.routing_decision

            if decision is None:
                logger.warning(f"[Workflow] No routing decision for conversation {event.conversation_id}")
                self.store.update_conversation(event.conversation_id, status=STATUS_FAILED)
                return {
                    "conversationType": None,
                    "routingReason": None,
                    "message": None,
                    "routed": False,
                }

            conversation_type = decision.conversation_type
            logger.info(f"[Workflow] Routing decision: {conversation_type.value} - {decision.reason}")

            self.store.update_conversation(
                event.conversation_id,
                type=conversation_type.value.lower(),
                status=STATUS_COMPLETED if conversation_type == ConversationType.GENERAL_CHAT else STATUS_PROCESSING,
            )
            self.store.add_message(
                event.conversation_id,
                role="assistant",
                content=decision.message,
                metadata={
                    "conversationType": conversation_type.value,
                    "routingReason": decision.reason,
                    "routed": True,
                },
            )

            downstream = DOWNSTREAM_EVENTS.get(conversation_type)
            if downstream:
                fragment_event = FragmentEvent(
                    **event.model_dump(),
                    template_name=DEFAULT_TEMPLATE_NAME if downstream == BUILD_INITIAL_FRAGMENT else None,
                )
                await self.bus.send(downstream, fragment_event.to_payload())
        except Exception as e:
            logger.error(f"[Workflow] Routing failed for {event.conversation_id}: {e}", exc_info=True)
            self.store.update_conversation(event.conversation_id, status=STATUS_FAILED)
            raise

        return {
            "conversationType": conversation_type.value,
            "routingReason": decision.reason,
            "message": decision.message,
            "routed": decision.routed,
        }

    # ============================================
    # Helper Methods
    # ============================================

    def _get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        return conversation

    def _prior_transcript(
        self,
        conversation: Conversation,
        exclude_message_id: Optional[str] = None,
    ) -> List[Message]:
        """Earlier messages of the conversation, minus the one being handled"""
        return [
            Message(role=m.role, content=m.content)
            for m in conversation.messages
            if m.id != exclude_message_id and m.role in ("user", "assistant") and m.content
        ]


def register_workflows(bus: EventBus, workflows: FragmentWorkflows):
    """Subscribe the workflow functions to their events"""
    bus.subscribe(PROCESS_MESSAGE, workflows.process_message)
    bus.subscribe(BUILD_INITIAL_FRAGMENT, workflows.build_initial_fragment)
    bus.subscribe(UPDATE_EXISTING_FRAGMENT, workflows.update_existing_fragment)
    bus.subscribe(FIX_ERRORS_IN_EXISTING_FRAGMENT, workflows.fix_errors_in_existing_fragment)
