"""
Model Output Markers
模型输出标记解析

The models signal completion and routing decisions with tagged text. That
text is parsed here, once, into structured values; nothing else in the code
base looks at the raw tags.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


TASK_SUMMARY_PATTERN = re.compile(r"<task_summary>.*?</task_summary>", re.DOTALL)

CONVERSATION_TYPE_PATTERN = re.compile(r"<conversation_type>(.*?)</conversation_type>")
ROUTING_REASON_PATTERN = re.compile(r"<routing_reason>(.*?)</routing_reason>")
MESSAGE_PATTERN = re.compile(r"<message>(.*?)</message>", re.DOTALL)


class ConversationType(str, Enum):
    BUILD_FRAGMENT = "BUILD_FRAGMENT"
    UPDATE_FRAGMENT = "UPDATE_FRAGMENT"
    FIX_ERRORS = "FIX_ERRORS"
    GENERAL_CHAT = "GENERAL_CHAT"


class RoutingFallback(str, Enum):
    """What to record when the routing markers can't be parsed"""
    DROP = "drop"                   # record nothing
    GENERAL_CHAT = "general_chat"   # treat the raw reply as general chat


class RoutingParseError(ValueError):
    """Routing reply is missing a marker or names an unknown type"""


@dataclass(frozen=True)
class RoutingDecision:
    conversation_type: ConversationType
    reason: str
    message: str

    @property
    def routed(self) -> bool:
        return self.conversation_type != ConversationType.GENERAL_CHAT


# ============================================
# Parsing
# ============================================

def extract_task_summary(text: Optional[str]) -> Optional[str]:
    """
    Find the completion marker in assistant text.

    Returns:
        The `<task_summary>...</task_summary>` substring including its tags,
        or None if the text has no complete marker
    """
    if not text or "<task_summary>" not in text:
        return None
    match = TASK_SUMMARY_PATTERN.search(text)
    return match.group(0) if match else None


def parse_routing_decision(text: str) -> RoutingDecision:
    """
    Parse the routing agent's reply.

    Raises:
        RoutingParseError: if any of the three markers is missing or the
            conversation type is not one of the known values
    """
    type_match = CONVERSATION_TYPE_PATTERN.search(text or "")
    reason_match = ROUTING_REASON_PATTERN.search(text or "")
    message_match = MESSAGE_PATTERN.search(text or "")

    missing = [
        name for name, match in (
            ("conversation_type", type_match),
            ("routing_reason", reason_match),
            ("message", message_match),
        )
        if match is None
    ]
    if missing:
        raise RoutingParseError(f"Missing routing markers: {', '.join(missing)}")

    raw_type = type_match.group(1).strip()
    try:
        conversation_type = ConversationType(raw_type)
    except ValueError:
        raise RoutingParseError(f"Unknown conversation type: {raw_type!r}")

    return RoutingDecision(
        conversation_type=conversation_type,
        reason=reason_match.group(1).strip(),
        message=message_match.group(1).strip(),
    )


def fallback_decision(text: str, policy: RoutingFallback) -> Optional[RoutingDecision]:
    """Decision to record for an unparseable reply under the given policy"""
    if policy == RoutingFallback.DROP:
        return None
    return RoutingDecision(
        conversation_type=ConversationType.GENERAL_CHAT,
        reason="Routing markers missing from reply",
        message=(text or "").strip(),
    )
