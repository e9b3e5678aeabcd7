"""
Conversation API Routes
对话 API 路由

Provides HTTP endpoints for chatting with the agents:
- POST /api/projects/{project_id}/ai/chat                               - Start a conversation
- POST /api/projects/{project_id}/ai/conversations/{id}/messages        - Send a follow-up message
- GET  /api/projects/{project_id}/ai/conversations                      - List conversations
- GET  /api/projects/{project_id}/ai/conversations/{id}                 - Get conversation detail

- POST /api/projects/{project_id}/ai/build-fragment                     - Build directly (no routing)
- POST /api/projects/{project_id}/ai/update-fragment                    - Update directly
- POST /api/projects/{project_id}/ai/fix-errors                         - Fix directly

Messages are processed in the background; clients poll the conversation.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from workflows.events import (
    BUILD_INITIAL_FRAGMENT,
    DEFAULT_TEMPLATE_NAME,
    FIX_ERRORS_IN_EXISTING_FRAGMENT,
    PROCESS_MESSAGE,
    UPDATE_EXISTING_FRAGMENT,
    EventBus,
    FragmentEvent,
    ProcessMessageEvent,
    get_event_bus,
)

from .conversation_store import Conversation, ConversationStore, conversation_store

router = APIRouter(prefix="/api/projects/{project_id}/ai", tags=["ai"])


def get_conversation_store() -> ConversationStore:
    return conversation_store


# ============================================
# Request Models
# ============================================

class ChatRequest(BaseModel):
    """Request model for starting a conversation"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, description="User message")
    title: Optional[str] = Field(None, description="Conversation title (defaults to the message)")
    org_id: Optional[str] = Field(None, alias="orgId")
    user_id: Optional[str] = Field(None, alias="userId")


class MessageRequest(BaseModel):
    """Request model for a follow-up message"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, description="User message")
    user_id: Optional[str] = Field(None, alias="userId")


class FragmentRequest(BaseModel):
    """Request model for triggering a code workflow directly"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, description="What to build, change or fix")
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    template_name: Optional[str] = Field(None, alias="templateName")
    org_id: Optional[str] = Field(None, alias="orgId")
    user_id: Optional[str] = Field(None, alias="userId")


# ============================================
# Helpers
# ============================================

def _project_conversation(store: ConversationStore, project_id: str, conversation_id: str) -> Conversation:
    conversation = store.get_conversation(conversation_id)
    if not conversation or conversation.project_id != project_id:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def _default_title(message: str) -> str:
    title = message.strip().splitlines()[0] if message.strip() else "New conversation"
    return title[:60]


# ============================================
# Conversation Endpoints
# ============================================

@router.post("/chat")
async def start_chat(
    project_id: str,
    request: ChatRequest,
    store: ConversationStore = Depends(get_conversation_store),
    bus: EventBus = Depends(get_event_bus),
):
    """
    Start a conversation and queue the message for routing
    创建对话并发送消息
    """
    conversation = store.create_conversation(
        project_id=project_id,
        title=request.title or _default_title(request.message),
        org_id=request.org_id,
        user_id=request.user_id,
    )
    message = store.add_message(conversation.id, role="user", content=request.message)

    event = ProcessMessageEvent(
        conversation_id=conversation.id,
        message_id=message.id,
        message=request.message,
        project_id=project_id,
        org_id=request.org_id,
        user_id=request.user_id,
    )
    await bus.send(PROCESS_MESSAGE, event.to_payload())

    return {
        "success": True,
        "conversation": store.get_conversation(conversation.id).to_summary(),
        "message_id": message.id,
    }


@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    project_id: str,
    conversation_id: str,
    request: MessageRequest,
    store: ConversationStore = Depends(get_conversation_store),
    bus: EventBus = Depends(get_event_bus),
):
    """
    Add a follow-up message to a conversation
    发送后续消息
    """
    conversation = _project_conversation(store, project_id, conversation_id)
    message = store.add_message(conversation_id, role="user", content=request.message)

    event = ProcessMessageEvent(
        conversation_id=conversation_id,
        message_id=message.id,
        message=request.message,
        project_id=project_id,
        org_id=conversation.org_id,
        user_id=request.user_id or conversation.user_id,
    )
    await bus.send(PROCESS_MESSAGE, event.to_payload())

    return {"success": True, "message_id": message.id}


@router.get("/conversations")
async def list_conversations(
    project_id: str,
    store: ConversationStore = Depends(get_conversation_store),
):
    conversations = store.list_conversations(project_id)
    return {
        "success": True,
        "count": len(conversations),
        "conversations": [c.to_summary() for c in conversations],
    }


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    project_id: str,
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store),
):
    """
    Get conversation detail with messages and latest fragment
    获取对话详情
    """
    conversation = _project_conversation(store, project_id, conversation_id)
    return {"success": True, "conversation": conversation.to_dict()}


# ============================================
# Direct Workflow Endpoints
# ============================================

async def _trigger_fragment(
    event_name: str,
    project_id: str,
    request: FragmentRequest,
    store: ConversationStore,
    bus: EventBus,
):
    """Record the message and send the code workflow event, skipping routing"""
    if request.conversation_id:
        conversation = _project_conversation(store, project_id, request.conversation_id)
    else:
        conversation = store.create_conversation(
            project_id=project_id,
            title=_default_title(request.message),
            org_id=request.org_id,
            user_id=request.user_id,
        )
    message = store.add_message(conversation.id, role="user", content=request.message)

    template_name = request.template_name
    if event_name == BUILD_INITIAL_FRAGMENT and not template_name:
        template_name = DEFAULT_TEMPLATE_NAME

    event = FragmentEvent(
        conversation_id=conversation.id,
        message_id=message.id,
        message=request.message,
        project_id=project_id,
        org_id=request.org_id or conversation.org_id,
        user_id=request.user_id or conversation.user_id,
        template_name=template_name,
    )
    await bus.send(event_name, event.to_payload())

    return {"success": True, "conversation_id": conversation.id, "message_id": message.id}


@router.post("/build-fragment")
async def build_fragment(
    project_id: str,
    request: FragmentRequest,
    store: ConversationStore = Depends(get_conversation_store),
    bus: EventBus = Depends(get_event_bus),
):
    return await _trigger_fragment(BUILD_INITIAL_FRAGMENT, project_id, request, store, bus)


@router.post("/update-fragment")
async def update_fragment(
    project_id: str,
    request: FragmentRequest,
    store: ConversationStore = Depends(get_conversation_store),
    bus: EventBus = Depends(get_event_bus),
):
    return await _trigger_fragment(UPDATE_EXISTING_FRAGMENT, project_id, request, store, bus)


@router.post("/fix-errors")
async def fix_errors(
    project_id: str,
    request: FragmentRequest,
    store: ConversationStore = Depends(get_conversation_store),
    bus: EventBus = Depends(get_event_bus),
):
    return await _trigger_fragment(FIX_ERRORS_IN_EXISTING_FRAGMENT, project_id, request, store, bus)
