"""Tests for reverse geocoding and voice-note transcription."""

from types import SimpleNamespace

import httpx
import pytest
from openai import OpenAIError

from cea_agent.enrichment import NominatimGeocoder, WhisperTranscriber
from tests.helpers import mock_client, unreachable


class FakeTranscriptions:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _openai(transcriptions):
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions))


class TestNominatimGeocoder:
    @pytest.mark.asyncio
    async def test_reverse(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"display_name": "Av. Universidad 100, Queretaro"})

        geocoder = NominatimGeocoder(base_url="http://geo.test/", http_client=mock_client(handler))
        assert await geocoder.reverse(20.59, -100.39) == "Av. Universidad 100, Queretaro"
        assert seen[0].url.path == "/reverse"
        assert seen[0].url.params["format"] == "json"

    @pytest.mark.asyncio
    async def test_http_error_is_none(self):
        geocoder = NominatimGeocoder(
            base_url="http://geo.test", http_client=mock_client(lambda r: httpx.Response(503))
        )
        assert await geocoder.reverse(1.0, 2.0) is None

    @pytest.mark.asyncio
    async def test_unreachable_is_none(self):
        geocoder = NominatimGeocoder(base_url="http://geo.test", http_client=mock_client(unreachable))
        assert await geocoder.reverse(1.0, 2.0) is None

    @pytest.mark.asyncio
    async def test_no_address_is_none(self):
        geocoder = NominatimGeocoder(
            base_url="http://geo.test", http_client=mock_client(lambda r: httpx.Response(200, json={"error": "x"}))
        )
        assert await geocoder.reverse(1.0, 2.0) is None


class TestWhisperTranscriber:
    @pytest.mark.asyncio
    async def test_transcribes(self):
        transcriptions = FakeTranscriptions(text="  hay una fuga en mi calle ")
        transcriber = WhisperTranscriber(client=_openai(transcriptions))
        assert await transcriber.transcribe(b"ogg-bytes") == "hay una fuga en mi calle"
        assert transcriptions.calls[0]["file"].name == "voice.ogg"

    @pytest.mark.asyncio
    async def test_empty_audio_skips_call(self):
        transcriptions = FakeTranscriptions(text="x")
        assert await WhisperTranscriber(client=_openai(transcriptions)).transcribe(b"") is None
        assert transcriptions.calls == []

    @pytest.mark.asyncio
    async def test_api_error_is_none(self):
        transcriptions = FakeTranscriptions(error=OpenAIError("quota exceeded"))
        assert await WhisperTranscriber(client=_openai(transcriptions)).transcribe(b"ogg") is None
