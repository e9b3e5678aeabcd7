"""
Workflow Events
工作流事件

Event names, payload models and the in-process bus that dispatches them.
`send` is fire-and-forget: each subscribed handler runs in its own task, so
the sender never waits for a workflow to finish.
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
import asyncio
import logging

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


# ============================================
# Event Names
# ============================================

PROCESS_MESSAGE = "ankar.ai/process-message"
BUILD_INITIAL_FRAGMENT = "ankar.ai/build-initial-fragment"
UPDATE_EXISTING_FRAGMENT = "ankar.ai/update-existing-fragment"
FIX_ERRORS_IN_EXISTING_FRAGMENT = "ankar.ai/fix-errors-in-existing-fragment"

DEFAULT_TEMPLATE_NAME = "default"


# ============================================
# Payloads
# ============================================

class ProcessMessageEvent(BaseModel):
    """A user message that still needs to be classified"""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId")
    message_id: Optional[str] = Field(None, alias="messageId")
    message: str
    project_id: str = Field(..., alias="projectId")
    org_id: Optional[str] = Field(None, alias="orgId")
    user_id: Optional[str] = Field(None, alias="userId")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FragmentEvent(ProcessMessageEvent):
    """A message routed to one of the code-producing workflows"""
    template_name: Optional[str] = Field(None, alias="templateName")


# ============================================
# Event Bus
# ============================================

EventHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class EventBus:
    """In-memory async event dispatcher"""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, name: str, handler: EventHandler):
        self._handlers.setdefault(name, []).append(handler)
        logger.info(f"[EventBus] Subscribed handler to {name}")

    async def send(self, name: str, data: Dict[str, Any]) -> int:
        """
        Dispatch an event to its handlers without waiting for them.

        Returns:
            Number of handlers started
        """
        handlers = self._handlers.get(name, [])
        if not handlers:
            logger.warning(f"[EventBus] No handler for {name}")
            return 0

        for handler in handlers:
            task = asyncio.create_task(self._run_handler(name, handler, data))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.info(f"[EventBus] Sent {name} to {len(handlers)} handler(s)")
        return len(handlers)

    async def _run_handler(self, name: str, handler: EventHandler, data: Dict[str, Any]) -> Any:
        try:
            return await handler(data)
        except Exception as e:
            # Handler tasks have no awaiting caller; failures end here
            logger.error(f"[EventBus] Handler for {name} failed: {e}", exc_info=True)
            return None

    async def drain(self):
        """Wait until every dispatched handler (and whatever it sent) has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the application event bus"""
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus
