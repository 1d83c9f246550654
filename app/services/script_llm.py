"""
Script LLM Service
Uses Groq to write short narration scripts for talking-avatar videos.
"""

import logging

import groq
from groq import AsyncGroq

from app.core.config import settings
from app.core.exceptions import NonRetryableError, RetryableError

logger = logging.getLogger(__name__)


class ScriptService:
    """Service for narration script generation."""

    SYSTEM_PROMPT = "You are a helpful AI that writes scripts suitable for text-to-speech applications."

    SCRIPT_TEMPLATE = """Write a concise and clear script about the following topic: '{topic}'.
The script should be suitable for text-to-speech, avoiding informal expressions,
emojis, and overly complex sentences. Use punctuation to indicate natural pauses."""

    def __init__(self, client: AsyncGroq = None):
        self.client = client or AsyncGroq(
            api_key=settings.GROQ_API_KEY,
            timeout=settings.SCRIPT_TIMEOUT,
            max_retries=0,  # retries are owned by the pipeline
        )
        self.model = settings.GROQ_MODEL

    async def generate_script(self, topic: str) -> str:
        """
        Generate a narration script for a topic.

        Raises:
            NonRetryableError: topic is empty
            RetryableError: vendor error, timeout or unusable response
        """
        if not topic or not topic.strip():
            raise NonRetryableError("Topic is required")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": self.SCRIPT_TEMPLATE.format(topic=topic.strip())}
                ],
                temperature=settings.GROQ_TEMPERATURE,
                max_tokens=settings.SCRIPT_MAX_TOKENS
            )
        except groq.APIError as e:
            raise RetryableError(f"Script generation failed: {e}") from e

        try:
            script = (response.choices[0].message.content or "").strip()
        except (AttributeError, IndexError, TypeError) as e:
            raise RetryableError(f"Malformed script response: {e}") from e

        if not script:
            raise RetryableError("Script generation returned an empty script")

        logger.info(f"[Script] Generated {len(script)} chars for topic '{topic[:50]}'")
        return script
