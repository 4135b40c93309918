"""Vision model client for image region analysis.

Talks to any OpenAI-compatible chat completions endpoint. The default
configuration targets a local LM Studio server running MiniCPM-o.
"""

import logging
from typing import Any, Optional

from openai import (
    APIConnectionError,
    APIError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from nanostudio.core.config import settings
from nanostudio.core.exceptions import InvalidUploadRequest, UpstreamAnalysisError

logger = logging.getLogger(__name__)

EMPTY_ANALYSIS = "Unable to analyze the selected area."

# APITimeoutError is a subclass of APIConnectionError
TRANSIENT_ERRORS = (APIConnectionError, RateLimitError, InternalServerError)


class VisionAnalyzer:
    """Client for describing image crops with a vision-capable LLM."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        max_attempts: Optional[int] = None,
        retry_wait: Optional[wait_base] = None,
    ):
        """Initialize vision client.

        Args:
            client: Preconfigured OpenAI client (default: built from settings)
            model: Model name (default: from settings)
            max_attempts: Attempts for transient failures (default: from settings)
            retry_wait: Tenacity wait strategy between attempts
        """
        self.model_name = model or settings.VISION_MODEL
        self.max_attempts = max_attempts or settings.VISION_MAX_ATTEMPTS
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        # Retries are handled here, not inside the SDK
        self._client = client or AsyncOpenAI(
            base_url=settings.VISION_BASE_URL,
            api_key=settings.VISION_API_KEY,
            timeout=settings.REQUEST_TIMEOUT,
            max_retries=0,
        )

    @staticmethod
    def build_prompt(selection: Any) -> str:
        """Compose the text prompt, mentioning the selected region if known."""
        prompt = settings.VISION_PROMPT
        if selection is None:
            return prompt

        if isinstance(selection, BaseModel):
            selection = selection.model_dump()

        return (
            f"{prompt}\n\nThe image is a crop of a larger picture, taken at "
            f"x={selection['x']:g}, y={selection['y']:g} with size "
            f"{selection['width']:g}x{selection['height']:g} pixels."
        )

    async def analyze(self, payload: str, selection: Any = None) -> str:
        """Describe the image in ``payload``.

        Args:
            payload: Image as a ``data:image/...`` URL
            selection: Region the crop was taken from, if any

        Returns:
            Model description of the image

        Raises:
            InvalidUploadRequest: If payload is not an image data URL
            UpstreamAnalysisError: If the model call fails or returns an
                unexpected shape
        """
        if not payload.startswith("data:image/"):
            raise InvalidUploadRequest("Invalid image format - not a data URL")

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.build_prompt(selection)},
                    {"type": "image_url", "image_url": {"url": payload}},
                ],
            }
        ]

        logger.info(
            "Requesting image analysis",
            extra={"model": self.model_name, "payload_length": len(payload)},
        )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self.retry_wait,
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Retrying image analysis",
                            extra={
                                "attempt": attempt.retry_state.attempt_number,
                                "max_attempts": self.max_attempts,
                            },
                        )
                    response = await self._client.chat.completions.create(
                        model=self.model_name,
                        messages=messages,
                        max_tokens=settings.VISION_MAX_TOKENS,
                        temperature=settings.VISION_TEMPERATURE,
                    )
        except APIError as e:
            logger.error("Vision model call failed", extra={"error": str(e)}, exc_info=True)
            raise UpstreamAnalysisError(f"Failed to analyze image: {e}") from e

        choices = getattr(response, "choices", None)
        if not choices or choices[0].message is None:
            logger.error("Invalid response format from vision model", extra={"response": str(response)})
            raise UpstreamAnalysisError("Failed to analyze image: invalid response format from vision model")

        content = choices[0].message.content
        logger.info(
            "Image analysis completed",
            extra={"model": self.model_name, "analysis_length": len(content or "")},
        )
        return content or EMPTY_ANALYSIS
