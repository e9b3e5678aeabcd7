from __future__ import annotations

import pytest

from agent.markers import (
    ConversationType,
    RoutingFallback,
    RoutingParseError,
    extract_task_summary,
    fallback_decision,
    parse_routing_decision,
)


def _routing_reply(conversation_type: str, reason: str = "because", message: str = "On it!") -> str:
    return (
        f"<conversation_type>{conversation_type}</conversation_type>\n"
        f"<routing_reason>{reason}</routing_reason>\n"
        f"<message>{message}</message>"
    )


def test_task_summary_is_tag_inclusive() -> None:
    text = "All done.\n<task_summary>Built a landing page.</task_summary>\nbye"

    assert extract_task_summary(text) == "<task_summary>Built a landing page.</task_summary>"


def test_task_summary_spans_lines() -> None:
    text = "<task_summary>\nLine one\nLine two\n</task_summary>"

    assert extract_task_summary(text) == text


@pytest.mark.parametrize("text", [None, "", "no marker here", "<task_summary>never closed"])
def test_task_summary_absent(text) -> None:
    assert extract_task_summary(text) is None


@pytest.mark.parametrize("conversation_type", [t.value for t in ConversationType])
def test_parse_each_conversation_type(conversation_type: str) -> None:
    decision = parse_routing_decision(_routing_reply(conversation_type, reason=" why ", message=" hi "))

    assert decision.conversation_type == ConversationType(conversation_type)
    assert decision.reason == "why"
    assert decision.message == "hi"
    assert decision.routed is (conversation_type != "GENERAL_CHAT")


def test_parse_multiline_message() -> None:
    decision = parse_routing_decision(_routing_reply("GENERAL_CHAT", message="1. memo\n2. lazy"))

    assert decision.message == "1. memo\n2. lazy"


def test_parse_missing_marker() -> None:
    reply = "<conversation_type>BUILD_FRAGMENT</conversation_type><message>ok</message>"

    with pytest.raises(RoutingParseError, match="routing_reason"):
        parse_routing_decision(reply)


def test_parse_unknown_type() -> None:
    with pytest.raises(RoutingParseError, match="Unknown conversation type"):
        parse_routing_decision(_routing_reply("DEPLOY"))


def test_fallback_policies() -> None:
    assert fallback_decision("hello there", RoutingFallback.DROP) is None

    decision = fallback_decision("  hello there ", RoutingFallback.GENERAL_CHAT)
    assert decision.conversation_type == ConversationType.GENERAL_CHAT
    assert decision.message == "hello there"
    assert not decision.routed
