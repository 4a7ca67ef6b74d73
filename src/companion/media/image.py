"""Image generation through the Kie.ai task API."""

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

import httpx

from ..persona import Persona

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.kie.ai"
CREATE_TASK_ENDPOINT = "/api/v1/jobs/createTask"
RECORD_INFO_ENDPOINT = "/api/v1/jobs/recordInfo"
MODEL = "bytedance/seedream-v4-text-to-image"

STYLE_BOOSTER = (
    "shot on iPhone, candid photography, natural lighting, grainy texture, "
    "skin pores, slight imperfections, 4k, hyper-realistic"
)
MAX_PROMPT_LENGTH = 1000

# Applied in order; phrases that trip content filters become neutral ones.
_SANITIZE_RULES = [
    (re.compile(r"\b(bedsheets?|bedding)\b", re.I), "indoor setting"),
    (re.compile(r"\bin (a |the )?bed\b", re.I), "indoors"),
    (re.compile(r"\bon (a |the )?bed\b", re.I), "in a room"),
    (re.compile(r"\b(bedroom|bed)\b", re.I), "room"),
    (re.compile(r"\b(lying|laying)\b", re.I), "sitting"),
    (re.compile(r"\b(woken up|just woken)\b", re.I), "in the morning"),
    (re.compile(r"\b(sleepy|drowsy)\b", re.I), "relaxed"),
    (re.compile(r"\b(nightwear|sleepwear)\b", re.I), "casual clothes"),
    (re.compile(r"\b(pajamas?|pjs?)\b", re.I), "casual attire"),
    (re.compile(r"\b(undressed|partially dressed)\b", re.I), "casually dressed"),
    (re.compile(r"\b(changing clothes?)\b", re.I), "getting ready"),
    (re.compile(r"\bjust (showered|bathed)\b", re.I), "looking fresh"),
    (re.compile(r"\bafter (shower|bath)\b", re.I), "looking refreshed"),
    (re.compile(r"\b(shower(ed|ing)?|bath(ed|ing)?)\b", re.I), "fresh"),
    (re.compile(r"\b(wet|damp|dripping) hair\b", re.I), "styled hair"),
    (re.compile(r"\btowel\b", re.I), "accessory"),
    (re.compile(r"\b(intimate|sensual)\b", re.I), "close-up"),
    (re.compile(r"\b(sexy|seductive)\b", re.I), "attractive"),
]


class ImageGenerator(Protocol):
    """Turns a prompt into an image URL."""

    async def generate(self, prompt: str) -> str | None: ...


def sanitize_prompt(prompt: str) -> str:
    """Replace words that commonly get image prompts rejected."""
    for pattern, replacement in _SANITIZE_RULES:
        prompt = pattern.sub(replacement, prompt)
    return prompt


def build_image_prompt(prompt: str, persona: Persona, outfit: str | None = None) -> str:
    """Build the final photo prompt: scene, then the persona, then the style."""
    full_prompt = f"A candid photo of {sanitize_prompt(prompt.strip())}. "
    if persona.physical_traits:
        full_prompt += f"The subject is a woman with {persona.physical_traits}"
        if outfit:
            full_prompt += f", wearing {outfit}"
        full_prompt += ". "
    full_prompt += f"Style: {STYLE_BOOSTER}."

    if len(full_prompt) > MAX_PROMPT_LENGTH:
        logger.warning("Image prompt truncated from %d characters", len(full_prompt))
        full_prompt = full_prompt[: MAX_PROMPT_LENGTH - 3] + "..."
    return full_prompt


class KieAiImageGenerator:
    """Submits a text-to-image task and polls until it finishes.

    Polling runs under an overall deadline so a stuck task never holds a
    worker for longer than ``max_poll_time`` seconds.
    """

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        base_url: str = API_BASE_URL,
        model: str = MODEL,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        poll_interval: float = 5.0,
        max_poll_time: float = 120.0,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the generator.

        Args:
            api_key: Kie.ai API key.
            client: Shared HTTP client; a short-lived one is used if None.
            base_url: API root.
            model: Text-to-image model name.
            max_retries: Task submission attempts.
            retry_delay: Seconds between submission attempts.
            poll_interval: Seconds between status checks.
            max_poll_time: Overall polling deadline in seconds.
            timeout: Per-request timeout in seconds.
        """
        self.api_key = api_key
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.poll_interval = poll_interval
        self.max_poll_time = max_poll_time
        self.timeout = timeout

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def generate(self, prompt: str) -> str | None:
        """Generate an image.

        Returns:
            The image URL, or None if generation failed or timed out.
        """
        if not self.api_key:
            logger.error("Kie.ai API key is not configured")
            return None

        async with self._session() as client:
            task_id = await self._submit(client, prompt)
            if task_id is None:
                return None
            try:
                return await asyncio.wait_for(
                    self._poll(client, task_id), timeout=self.max_poll_time
                )
            except asyncio.TimeoutError:
                logger.error("Image task %s timed out after %ss", task_id, self.max_poll_time)
                return None

    async def _submit(self, client: httpx.AsyncClient, prompt: str) -> str | None:
        payload = {
            "model": self.model,
            "input": {
                "prompt": prompt,
                "image_size": "square_hd",
                "image_resolution": "2K",
                "max_images": 1,
            },
        }
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await client.post(
                    self.base_url + CREATE_TASK_ENDPOINT, json=payload, headers=self._headers
                )
                response.raise_for_status()
                data = response.json()
                if data.get("code") != 200:
                    raise ValueError(f"task submission returned {data}")
                task_id = (data.get("data") or {}).get("taskId")
                if not task_id:
                    logger.error("No taskId in image task response: %s", data)
                    return None
                logger.info("Image task %s submitted", task_id)
                return str(task_id)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "Image task submission failed (attempt %d/%d): %s",
                    attempt,
                    self.max_retries,
                    e,
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay)
        return None

    async def _poll(self, client: httpx.AsyncClient, task_id: str) -> str | None:
        while True:
            try:
                response = await client.get(
                    self.base_url + RECORD_INFO_ENDPOINT,
                    params={"taskId": task_id},
                    headers=self._headers,
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Image task %s status check failed: %s", task_id, e)
                await asyncio.sleep(self.poll_interval)
                continue

            if data.get("code") != 200:
                logger.warning("Image task %s status error: %s", task_id, data)
                await asyncio.sleep(self.poll_interval)
                continue

            task = data.get("data") or {}
            state = task.get("state")
            if state == "success":
                return self._first_url(task_id, task)
            if state == "fail":
                logger.error(
                    "Image task %s failed: %s", task_id, task.get("failMsg") or "unknown error"
                )
                return None

            logger.debug("Image task %s still %s", task_id, state)
            await asyncio.sleep(self.poll_interval)

    def _first_url(self, task_id: str, task: dict[str, Any]) -> str | None:
        try:
            result = json.loads(task.get("resultJson") or "{}")
        except json.JSONDecodeError:
            result = {}
        urls = result.get("resultUrls") or []
        if not urls:
            logger.error("Image task %s finished without images", task_id)
            return None
        logger.info("Image task %s completed", task_id)
        return urls[0]
