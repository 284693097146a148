from cea_agent.conversation.slots import STICKY_SLOTS, apply_extraction, known_slots
from cea_agent.conversation.store import ConversationStore, bound_history
from cea_agent.conversation.turn_machine import TurnMachine, TurnStage

__all__ = [
    "ConversationStore",
    "bound_history",
    "STICKY_SLOTS",
    "apply_extraction",
    "known_slots",
    "TurnMachine",
    "TurnStage",
]
