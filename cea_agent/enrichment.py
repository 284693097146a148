"""
Side-channel enrichers for non-text messages.

Both enrichers are best effort: any failure is logged and reported as
``None`` so the workflow can fall back to a degraded annotation instead of
failing the turn.
"""

import io
import logging
from typing import Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from cea_agent.config import settings

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """Reverse geocoding against a Nominatim instance."""

    def __init__(self, base_url: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None) -> None:
        cfg = settings.enrichment
        self.base_url = (base_url or cfg.nominatim_url).rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.upstream.timeout_sec,
            headers={"User-Agent": cfg.user_agent},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def reverse(self, latitude: float, longitude: float) -> Optional[str]:
        """Street address for a coordinate, or ``None``."""
        try:
            response = await self._client.get(
                f"{self.base_url}/reverse",
                params={
                    "format": "json",
                    "lat": latitude,
                    "lon": longitude,
                    "zoom": 18,
                    "addressdetails": 1,
                    "accept-language": "es",
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Reverse geocoding failed for (%s, %s): %s", latitude, longitude, e)
            return None
        address = data.get("display_name") if isinstance(data, dict) else None
        return address or None


class WhisperTranscriber:
    """Speech-to-text for voice notes."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        self._client = client or AsyncOpenAI(
            api_key=settings.openai_api_key or None,
            timeout=settings.model.request_timeout_sec,
            max_retries=0,
        )

    async def transcribe(self, audio: bytes, filename: str = "voice.ogg") -> Optional[str]:
        if not audio:
            return None
        cfg = settings.enrichment
        buffer = io.BytesIO(audio)
        buffer.name = filename
        try:
            transcription = await self._client.audio.transcriptions.create(
                model=cfg.transcription_model,
                file=buffer,
                language=cfg.transcription_language,
            )
        except OpenAIError as e:
            logger.warning("Transcription failed: %s", e)
            return None
        text = (transcription.text or "").strip()
        return text or None
