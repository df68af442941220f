"""Core module - configuration, state, models, errors and guardrails."""

from .config import settings
from .errors import VoiceOperatorError
from .guardrails import RiskPolicy
from .models import Envelope, PageMap, ToolResult, UserProfile
from .state import TabState

__all__ = [
    "settings",
    "VoiceOperatorError",
    "RiskPolicy",
    "Envelope",
    "PageMap",
    "ToolResult",
    "UserProfile",
    "TabState",
]
