"""
Speech-to-Text.
Turns a recorded utterance into a transcript with the OpenAI transcription API.
"""

import logging

from openai import AsyncOpenAI, OpenAIError

from ..core.config import settings
from ..core.errors import DecisionServiceError


logger = logging.getLogger(__name__)


class Transcriber:
    """
    Transcription client.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        language: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize transcriber.

        Args:
            api_key: OpenAI API key (defaults to config)
            model: Transcription model (defaults to config)
            language: Spoken language code (defaults to config)
            client: Preconfigured client
        """
        self.model = model or settings.transcription_model
        self.language = language or settings.transcription_language
        if client is None:
            api_key = api_key or settings.openai_api_key
            if not api_key:
                raise ValueError("OpenAI API key not configured")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """
        Transcribe one utterance.

        Args:
            audio: Encoded audio clip
            filename: Name reported to the API (its extension selects the decoder)
            content_type: MIME type of the clip

        Returns:
            Transcript text, stripped

        Raises:
            DecisionServiceError: The transcription request failed
        """
        if not audio:
            return ""
        try:
            result = await self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio, content_type),
                language=self.language,
            )
        except OpenAIError as e:
            logger.exception("Transcription failed")
            raise DecisionServiceError(f"Transcription failed: {e}") from e
        text = (result.text or "").strip()
        logger.info("Transcribed %d bytes: %r", len(audio), text)
        return text
