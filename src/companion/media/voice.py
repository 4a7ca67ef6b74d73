"""Voice note generation with ElevenLabs text-to-speech."""

import logging
import uuid
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

API_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
MODEL_ID = "eleven_turbo_v2_5"


class VoiceGenerator:
    """Renders text to an MP3 file in the media directory."""

    def __init__(
        self,
        api_key: str,
        voice_id: str,
        media_dir: Path,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.voice_id = voice_id
        self.media_dir = media_dir
        self._client = client
        self.timeout = timeout

    async def generate(self, text: str) -> Path | None:
        """Synthesize speech.

        Returns:
            Path of the saved MP3, or None on any failure.
        """
        if not self.api_key or not self.voice_id:
            logger.error("ElevenLabs credentials are not configured")
            return None

        payload = {
            "text": text,
            "model_id": MODEL_ID,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
        }
        headers = {"xi-api-key": self.api_key}
        url = API_URL.format(voice_id=self.voice_id)
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Voice generation failed: %s", e)
            return None

        audio = response.content
        if not audio:
            logger.error("ElevenLabs returned no audio")
            return None

        path = self.media_dir / "voice" / f"{uuid.uuid4()}.mp3"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(audio)
        logger.info("Voice note saved to %s (%d bytes)", path, len(audio))
        return path
