"""
Run State
运行状态

Mutable context shared by every agent turn, tool call and response hook of
one run. A run owns exactly one RunState; it is passed by reference, never
stored globally.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field
import logging

from .markers import RoutingDecision

logger = logging.getLogger(__name__)

# Sent when the history ends on an assistant turn and the model must go on
CONTINUE_PROMPT = "Continue the task."


# ============================================
# Transcript Items
# ============================================

@dataclass
class Message:
    """A plain text message in the transcript"""
    role: str                           # "user" | "assistant"
    content: str
    type: str = "text"
    agent_name: Optional[str] = None    # set when produced by an agent turn

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            type=data.get("type", "text"),
        )


@dataclass
class ToolCall:
    """A tool invocation requested by the model"""
    id: str
    name: str
    input: Dict[str, Any]
    type: str = "tool_call"


@dataclass
class ToolCallResult:
    """Outcome of one tool invocation, as shown back to the model"""
    tool_use_id: str
    name: str
    content: str
    is_error: bool = False


OutputItem = Union[Message, ToolCall]


@dataclass
class AgentResult:
    """
    Everything produced by one agent turn
    单轮 Agent 输出

    `output` keeps the model's items in the order they were returned, so
    hooks can look at the first item of the turn.
    """
    agent_name: str
    output: List[OutputItem] = field(default_factory=list)
    tool_results: List[ToolCallResult] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(
            item.content for item in self.output
            if isinstance(item, Message) and item.role == "assistant"
        )

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [item for item in self.output if isinstance(item, ToolCall)]

    def first_assistant_text(self) -> Optional[str]:
        """Content of the first output item if it is assistant text"""
        if not self.output:
            return None
        first = self.output[0]
        if isinstance(first, Message) and first.role == "assistant" and first.type == "text":
            return first.content
        return None


# ============================================
# Run State
# ============================================

def default_data() -> Dict[str, Any]:
    return {"summary": "", "files": {}}


@dataclass
class RunState:
    """
    Shared state of one run
    单次运行的共享状态

    data keys:
        summary             - completion marker text, empty until the run is done
        files               - {path: content} written during the run
        containerName       - container carried over from the conversation (update/fix runs)
        containerPreviewURL - preview URL, once retrieved
        conversationType    - routing decision (routing runs only)
        routingReason       - routing decision reason
        routingMessage      - routing acknowledgement / chat reply
    """
    data: Dict[str, Any] = field(default_factory=default_data)
    messages: List[Message] = field(default_factory=list)
    results: List[AgentResult] = field(default_factory=list)
    routing_decision: Optional[RoutingDecision] = None

    # ---------- data accessors ----------

    @property
    def summary(self) -> str:
        return self.data.get("summary") or ""

    def set_summary(self, text: str) -> bool:
        """
        Record the completion summary.

        Returns:
            False if a summary was already recorded (it is never overwritten)
        """
        if self.summary:
            logger.warning("[RunState] Summary already set, ignoring new value")
            return False
        self.data["summary"] = text
        return True

    @property
    def files(self) -> Dict[str, str]:
        files = self.data.get("files")
        if files is None:
            files = {}
            self.data["files"] = files
        return files

    def merge_file(self, path: str, content: str):
        """Record a written file; later writes to the same path win"""
        self.files[path] = content

    @property
    def container_preview_url(self) -> Optional[str]:
        return self.data.get("containerPreviewURL") or None

    @property
    def container_name(self) -> Optional[str]:
        return self.data.get("containerName") or None

    # ---------- transcript ----------

    def add_user_message(self, content: str):
        self.messages.append(Message(role="user", content=content))

    def record(self, result: AgentResult):
        """Store a finished turn and append its assistant text to the transcript"""
        self.results.append(result)
        text = result.text
        if text:
            self.messages.append(Message(role="assistant", content=text, agent_name=result.agent_name))

    def transcript(self) -> List[Message]:
        return list(self.messages)

    def to_api_messages(self) -> List[Dict[str, Any]]:
        """
        Render the state as a Claude API message list.

        Seeded and user text messages come first (consecutive same-role
        messages are merged), then each turn as an assistant message followed
        by its tool results. Transcript entries written by `record` are
        rendered from their turn, not twice.
        """
        api_messages: List[Dict[str, Any]] = []

        for msg in self.messages:
            if msg.agent_name is not None:
                continue
            if api_messages and api_messages[-1]["role"] == msg.role \
                    and isinstance(api_messages[-1]["content"], str):
                api_messages[-1]["content"] += "\n\n" + msg.content
            else:
                api_messages.append({"role": msg.role, "content": msg.content})

        for result in self.results:
            assistant_content = []
            for item in result.output:
                if isinstance(item, Message):
                    if item.content:
                        assistant_content.append({"type": "text", "text": item.content})
                else:
                    assistant_content.append({
                        "type": "tool_use",
                        "id": item.id,
                        "name": item.name,
                        "input": item.input,
                    })
            if not assistant_content:
                continue
            if api_messages and api_messages[-1]["role"] == "assistant":
                api_messages.append({"role": "user", "content": CONTINUE_PROMPT})
            api_messages.append({"role": "assistant", "content": assistant_content})

            if result.tool_results:
                api_messages.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": r.tool_use_id,
                            "content": r.content,
                            "is_error": r.is_error,
                        }
                        for r in result.tool_results
                    ],
                })

        if not api_messages or api_messages[-1]["role"] == "assistant":
            api_messages.append({"role": "user", "content": CONTINUE_PROMPT})

        return api_messages
