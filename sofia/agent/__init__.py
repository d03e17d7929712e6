"""
Dialogue core: intent classification, slot-filling flows and reply composition.
"""

from .intent_router import IntentClassifier
from .orchestrator import Agent
from .resolve_event_target import DisambiguationResolver
from .response_agent import ResponseComposer
from .state import InMemorySessionStore, PendingAction, Session

__all__ = [
    "Agent",
    "IntentClassifier",
    "ResponseComposer",
    "DisambiguationResolver",
    "InMemorySessionStore",
    "PendingAction",
    "Session",
]
