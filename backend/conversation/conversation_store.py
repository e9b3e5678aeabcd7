"""
Conversation Store Implementation
对话存储实现

File-based storage for AI conversations.
Each conversation is one JSON document holding its metadata, its messages
and the latest fragment produced for it.

Directory structure:
/data/conversations/
├── <conversation-id>.json
└── ...
"""

import json
import re
import time
import uuid
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
import logging

import code_gen_config as config

logger = logging.getLogger(__name__)

# Default data directory
DATA_DIR = config.DATA_DIR / "conversations"

# Conversation IDs double as file names
ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\Z")

# Conversation statuses
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass
class ConversationMessage:
    """
    Single message in a conversation
    对话中的单条消息
    """
    id: str
    role: str                           # user | assistant
    content: str
    timestamp: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def created_at(self) -> str:
        return datetime.fromtimestamp(self.timestamp).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "created_at": self.created_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMessage":
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content", ""),
            timestamp=data.get("timestamp", time.time()),
            metadata=data.get("metadata", {}),
        )


@dataclass
class Conversation:
    """
    Conversation between a user and the agents for one project
    项目内的一次对话
    """
    id: str
    project_id: str
    title: str
    org_id: Optional[str]
    user_id: Optional[str]
    type: Optional[str]                 # build_fragment | update_fragment | fix_errors | general_chat
    status: str
    container_name: Optional[str]       # container the code agent works in
    preview_url: Optional[str]          # last known preview URL
    fragment: Optional[Dict[str, Any]]  # last result {url, title, files?, summary}
    created_at: float
    updated_at: float
    messages: List[ConversationMessage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization"""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "type": self.type,
            "status": self.status,
            "container_name": self.container_name,
            "preview_url": self.preview_url,
            "fragment": self.fragment,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "messages": [m.to_dict() for m in self.messages],
        }

    def to_summary(self) -> Dict[str, Any]:
        """Convert to summary for list endpoint"""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "type": self.type,
            "status": self.status,
            "preview_url": self.preview_url,
            "created_at": datetime.fromtimestamp(self.created_at).isoformat(),
            "updated_at": datetime.fromtimestamp(self.updated_at).isoformat(),
            "message_count": len(self.messages),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        """Create from dict"""
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            title=data.get("title", ""),
            org_id=data.get("org_id"),
            user_id=data.get("user_id"),
            type=data.get("type"),
            status=data.get("status", STATUS_PENDING),
            container_name=data.get("container_name"),
            preview_url=data.get("preview_url"),
            fragment=data.get("fragment"),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
            messages=[ConversationMessage.from_dict(m) for m in data.get("messages", [])],
        )


class ConversationStore:
    """
    File-based conversation storage
    基于文件的对话存储
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize conversation store

        Args:
            data_dir: Directory for conversation storage
        """
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Conversation store initialized at: {self.data_dir}")

    # ============================================
    # Conversation Operations
    # ============================================

    def create_conversation(
        self,
        project_id: str,
        title: str = "",
        org_id: Optional[str] = None,
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        """
        Create a new conversation
        创建新对话

        Args:
            project_id: Project the conversation belongs to
            title: Conversation title
            org_id: Organisation ID
            user_id: User ID
            conversation_id: Optional custom conversation ID

        Returns:
            Created Conversation
        """
        if conversation_id and not ID_PATTERN.match(conversation_id):
            raise ValueError(f"Invalid conversation ID: {conversation_id}")

        now = time.time()
        conversation = Conversation(
            id=conversation_id or str(uuid.uuid4()),
            project_id=project_id,
            title=title,
            org_id=org_id,
            user_id=user_id,
            type=None,
            status=STATUS_PENDING,
            container_name=None,
            preview_url=None,
            fragment=None,
            created_at=now,
            updated_at=now,
        )
        self._save(conversation)

        logger.info(f"Created conversation {conversation.id} for project {project_id}")
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get conversation by ID
        根据 ID 获取对话
        """
        if not ID_PATTERN.match(conversation_id):
            return None
        path = self._path(conversation_id)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Conversation.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load conversation {conversation_id}: {e}")
            return None

    def list_conversations(self, project_id: Optional[str] = None) -> List[Conversation]:
        """
        List conversations, newest first
        列出对话

        Args:
            project_id: Only return conversations of this project
        """
        conversations = []
        for item in self.data_dir.glob("*.json"):
            conversation = self.get_conversation(item.stem)
            if conversation and (project_id is None or conversation.project_id == project_id):
                conversations.append(conversation)

        return sorted(conversations, key=lambda c: -c.updated_at)

    def update_conversation(
        self,
        conversation_id: str,
        type: Optional[str] = None,
        status: Optional[str] = None,
        title: Optional[str] = None,
        container_name: Optional[str] = None,
        preview_url: Optional[str] = None,
    ) -> Optional[Conversation]:
        """
        Update conversation metadata
        更新对话元数据
        """
        conversation = self.get_conversation(conversation_id)
        if not conversation:
            return None

        if type is not None:
            conversation.type = type
        if status is not None:
            conversation.status = status
        if title is not None:
            conversation.title = title
        if container_name is not None:
            conversation.container_name = container_name
        if preview_url is not None:
            conversation.preview_url = preview_url

        conversation.updated_at = time.time()
        self._save(conversation)
        return conversation

    def delete_conversation(self, conversation_id: str) -> bool:
        if not ID_PATTERN.match(conversation_id):
            return False
        path = self._path(conversation_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Deleted conversation: {conversation_id}")
        return True

    # ============================================
    # Message Operations
    # ============================================

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        message_id: Optional[str] = None,
    ) -> Optional[ConversationMessage]:
        """
        Append a message to a conversation
        添加消息

        Returns:
            Created message, or None if the conversation does not exist
        """
        conversation = self.get_conversation(conversation_id)
        if not conversation:
            logger.error(f"Conversation not found: {conversation_id}")
            return None

        message = ConversationMessage(
            id=message_id or str(uuid.uuid4()),
            role=role,
            content=content,
            timestamp=time.time(),
            metadata=metadata or {},
        )
        conversation.messages.append(message)
        conversation.updated_at = time.time()
        self._save(conversation)
        return message

    def get_messages(self, conversation_id: str) -> List[ConversationMessage]:
        conversation = self.get_conversation(conversation_id)
        if not conversation:
            return []
        return list(conversation.messages)

    def save_fragment(self, conversation_id: str, fragment: Dict[str, Any]) -> Optional[Conversation]:
        """
        Store the latest fragment result
        保存最新的 fragment 结果
        """
        conversation = self.get_conversation(conversation_id)
        if not conversation:
            return None

        conversation.fragment = fragment
        if fragment.get("url"):
            conversation.preview_url = fragment["url"]
        conversation.updated_at = time.time()
        self._save(conversation)

        logger.info(f"Saved fragment for conversation {conversation_id}")
        return conversation

    # ============================================
    # Helper Methods
    # ============================================

    def _path(self, conversation_id: str) -> Path:
        return self.data_dir / f"{conversation_id}.json"

    def _save(self, conversation: Conversation):
        """Write conversation document to file"""
        with open(self._path(conversation.id), "w", encoding="utf-8") as f:
            json.dump(conversation.to_dict(), f, ensure_ascii=False, indent=2)


# Global instance
conversation_store = ConversationStore()
