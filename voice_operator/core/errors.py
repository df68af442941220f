"""
Exception hierarchy.
Page-side errors are turned into failed tool results; server-side errors into status updates.
"""


class VoiceOperatorError(Exception):
    """Base class for all operator errors."""
    pass


class ElementNotFoundError(VoiceOperatorError):
    """An identifier could not be resolved to a live element."""

    def __init__(self, element_id: str, kind: str = "Element"):
        self.element_id = element_id
        super().__init__(f"{kind} {element_id} not found on page")


class ElementDisabledError(VoiceOperatorError):
    """The target element is disabled or read-only."""
    pass


class AmbiguousMatchError(VoiceOperatorError):
    """More than one candidate matched and the caller must disambiguate."""

    def __init__(self, message: str, candidates: list[str]):
        self.candidates = candidates
        super().__init__(f"{message}: {', '.join(candidates)}")


class InvalidURLError(VoiceOperatorError):
    """A navigation target could not be parsed as a URL."""
    pass


class DecisionServiceError(VoiceOperatorError):
    """The language-model call failed or returned something unusable."""
    pass


class AudioCaptureError(VoiceOperatorError):
    """The microphone could not be opened or stopped delivering samples."""
    pass


class ProtocolError(VoiceOperatorError):
    """An inbound envelope was malformed."""
    pass


class QuestionNotFoundError(VoiceOperatorError):
    """No form question matched the requested identifier or text."""

    def __init__(self, target: str, available: list[str]):
        self.target = target
        self.available = available
        super().__init__(
            f'Could not find question "{target}". Available questions: {"; ".join(available)}'
        )
