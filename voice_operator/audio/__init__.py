"""Audio module - voice activity detection, wake phrase and transcription."""

from .transcribe import Transcriber
from .vad import MicrophoneSource, VoiceActivityDetector
from .wake_word import WakeWordSpotter

__all__ = [
    "MicrophoneSource",
    "Transcriber",
    "VoiceActivityDetector",
    "WakeWordSpotter",
]
