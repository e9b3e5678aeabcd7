"""
Workflows Module
工作流模块

Event-driven workflow functions that route user messages and run the
coding agents.
"""

from .events import EventBus, get_event_bus
from .functions import FragmentWorkflows, FragmentResult, register_workflows

__all__ = [
    "EventBus",
    "get_event_bus",
    "FragmentWorkflows",
    "FragmentResult",
    "register_workflows",
]
