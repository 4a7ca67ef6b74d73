"""Groq-backed text generation with overload handling."""

import asyncio
import logging
from typing import Any

from groq import APIStatusError, AsyncGroq

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"

OVERLOADED_FALLBACK = "Ada hal sikit... Cuba sekejap lagi ya? 😊"

_OVERLOAD_STATUS_CODES = (429, 503)


class LLMOverloadedError(Exception):
    """Raised when the backend stays overloaded after every retry."""

    pass


def is_overloaded(error: Exception) -> bool:
    """Tell whether an error means the backend is busy and worth retrying."""
    if isinstance(error, APIStatusError) and error.status_code in _OVERLOAD_STATUS_CODES:
        return True
    message = str(error).lower()
    return "overloaded" in message or "rate limit" in message


class GroqLLMClient:
    """Wraps AsyncGroq behind a prompt-in, text-out interface.

    Overload and rate-limit errors are retried with exponential backoff.
    When they persist, the client either returns a short user-facing
    fallback text or raises LLMOverloadedError, depending on the caller.
    Every other error propagates unchanged.

    Example:
        from groq import AsyncGroq
        from companion.llm import GroqLLMClient

        llm = GroqLLMClient(AsyncGroq(api_key="..."))
        text = await llm.complete("Say hi", system="You are Aina.")
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
    ) -> None:
        """Initialize the Groq LLM client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            max_retries: Attempts made while the backend reports overload.
            initial_retry_delay: First backoff in seconds, doubled per retry.
        """
        self._client = client
        self._model = model
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float | None = None,
        json_mode: bool = False,
        fallback: bool = True,
    ) -> str:
        """Complete a prompt and return the text response.

        Args:
            prompt: The user prompt to complete.
            system: Optional system prompt to set context.
            temperature: Sampling temperature, backend default if None.
            json_mode: Ask the backend for a JSON object response.
            fallback: Return OVERLOADED_FALLBACK instead of raising when
                the backend stays overloaded.

        Returns:
            The LLM's text response.

        Raises:
            LLMOverloadedError: If overloaded after all retries and
                ``fallback`` is False.
        """
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {"model": self._model, "messages": messages}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        delay = self.initial_retry_delay
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.chat.completions.create(**kwargs)
                return response.choices[0].message.content or ""
            except Exception as e:
                if not is_overloaded(e):
                    raise
                if attempt < self.max_retries:
                    logger.warning(
                        "Model overloaded, retrying in %ss (attempt %d/%d)",
                        delay,
                        attempt,
                        self.max_retries,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                logger.error("Max retries reached, model still overloaded: %s", e)
                if fallback:
                    return OVERLOADED_FALLBACK
                raise LLMOverloadedError(str(e)) from e

        raise LLMOverloadedError("No attempts were made")

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model
