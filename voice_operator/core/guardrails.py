"""
Confirmation Guardrails.
Risk flagging for commit-type actions and phrase matching for spoken replies.
"""

import re

from .config import settings


CONFIRM_PHRASES = [
    "confirm", "yes", "proceed", "go ahead", "do it", "yes please",
    "that's right", "correct", "affirmative", "confirmed", "approve",
    "ok", "okay",
]

CANCEL_PHRASES = [
    "cancel", "no", "stop", "don't", "abort", "nevermind", "never mind",
    "wait", "hold on", "not yet", "no thanks",
]

# Commands that short-circuit the turn before anything else
TERMINAL_COMMANDS: dict[str, list[str]] = {
    "repeat": ["repeat", "say again", "what did you say", "pardon"],
    "slower": ["slower", "slow down", "speak slower", "too fast"],
    "stop": ["stop", "quiet", "shut up", "be quiet", "silence"],
}

# Commands answered locally without the decision service
BUILTIN_COMMANDS: dict[str, list[str]] = {
    "where_am_i": ["where am i", "what page", "current page", "what site"],
    "what_can_i_do": [
        "what can i do", "available actions", "what are my options",
        "help me", "what's available",
    ],
    "go_back": ["go back", "previous page", "back"],
}


def normalize(text: str) -> str:
    """Lowercase, unify apostrophes and drop trailing punctuation."""
    text = text.lower().replace("’", "'").strip()
    return re.sub(r"[.!?,]+$", "", text).strip()


def contains_phrase(text: str, phrase: str) -> bool:
    """Return True if phrase appears in text on word boundaries."""
    escaped = re.escape(phrase.strip().lower()).replace(r"\ ", r"\s+")
    return re.search(rf"(?<!\w){escaped}(?!\w)", text.lower()) is not None


def matches_any(text: str, phrases: list[str]) -> bool:
    return any(contains_phrase(text, phrase) for phrase in phrases)


class RiskPolicy:
    """
    Decides whether an action needs explicit confirmation.

    Keyword lists are configuration; see Settings.risky_keywords.
    """

    def __init__(
        self,
        keywords: list[str] | None = None,
        extra_keywords: list[str] | None = None,
    ):
        """
        Initialize policy.

        Args:
            keywords: Commit-type verbs checked on the page side
            extra_keywords: Additional phrases checked by the orchestrator
        """
        self.keywords = [k.lower() for k in (keywords if keywords is not None else settings.risky_keywords)]
        self.extra_keywords = [
            k.lower() for k in (extra_keywords if extra_keywords is not None else settings.server_risky_keywords)
        ]

    def is_risky_label(self, label: str) -> bool:
        """Case-insensitive substring match against the commit-verb list."""
        lowered = label.lower()
        return any(keyword in lowered for keyword in self.keywords)

    def needs_confirmation(self, label: str, flagged: bool = False) -> bool:
        """Server-side check: page flag, or a label match on either list."""
        if flagged:
            return True
        lowered = label.lower()
        return self.is_risky_label(label) or any(k in lowered for k in self.extra_keywords)


def classify_reply(text: str) -> str | None:
    """
    Classify a reply to a confirmation prompt.

    Cancel phrases are checked first so that "no, don't confirm" cancels.

    Returns:
        "cancel", "confirm" or None
    """
    normalized = normalize(text)
    if matches_any(normalized, CANCEL_PHRASES):
        return "cancel"
    if matches_any(normalized, CONFIRM_PHRASES):
        return "confirm"
    return None


def _match_command(text: str, table: dict[str, list[str]], exact: set[str]) -> str | None:
    normalized = normalize(text)
    for command, phrases in table.items():
        for phrase in phrases:
            if phrase in exact:
                if normalized == phrase:
                    return command
            elif contains_phrase(normalized, phrase):
                return command
    return None


def match_terminal_command(text: str) -> str | None:
    """Match stop / repeat / slower. Single words must be the whole utterance."""
    return _match_command(text, TERMINAL_COMMANDS, {"stop", "quiet", "silence", "repeat", "slower", "pardon"})


def match_builtin_command(text: str) -> str | None:
    """Match where-am-I / what-can-I-do / go-back. "back" alone must be the whole utterance."""
    return _match_command(text, BUILTIN_COMMANDS, {"back"})
