"""
Enums shared by the session model and the turn loop.
"""
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class StepStatus(str, Enum):
    """Lifecycle of a single lesson step."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class TurnPhase(Enum):
    """Phases a turn moves through inside TurnOrchestrator."""
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"
