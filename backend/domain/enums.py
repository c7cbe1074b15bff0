"""
Domain enums (minimal set used for clarity in services).
"""

from enum import Enum


class SessionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    READY = "READY"


class ActionOutcome(str, Enum):
    CONFIRMED = "CONFIRMED"
    NOT_READY = "NOT_READY"
    DENIED = "DENIED"
    FAILED = "FAILED"
