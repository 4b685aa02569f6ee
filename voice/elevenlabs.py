"""
ElevenLabs text-to-speech and speech-to-text client
"""
import base64
import logging
import httpx
from typing import Optional
from config import settings

logger = logging.getLogger(__name__)

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io/v1"
DEFAULT_TTS_MODEL = "eleven_multilingual_v2"
DEFAULT_STT_MODEL = "scribe_v1"
DEFAULT_VOICE = "jessica"

# Friendly names accepted in persona.voice_id; anything else is used as a raw voice id
VOICES = {
    "alloy": "EXAVITQu4vr4xnSDxMaL",
    "roger": "CwhRBWXzGAHq8TQ4Fs17",
    "charlie": "IKne3meq5aSn9XLyUdCD",
    "matilda": "XrExE9yKIg1WjnnlVkGX",
    "brian": "nPczCjzI2devNBz1zQrb",
    "jessica": "cgSgspJ2msm6clMCkdW9",
}


class VoiceError(Exception):
    pass


def resolve_voice_id(voice: Optional[str]) -> str:
    voice = voice or DEFAULT_VOICE
    return VOICES.get(voice, voice)


class ElevenLabsClient:

    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or settings.ELEVENLABS_API_KEY
        self.transport = transport
        if not self.api_key:
            raise VoiceError("ELEVENLABS_API_KEY is not configured")

    async def text_to_speech(self, text: str, voice: Optional[str] = None, model: str = DEFAULT_TTS_MODEL) -> str:
        """Synthesize `text`; returns base64-encoded MP3"""
        if not text:
            raise VoiceError("Text is required")

        voice_id = resolve_voice_id(voice)
        logger.info(f"🔄 Generating speech ({len(text)} chars) with voice {voice or DEFAULT_VOICE}")
        async with httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT) as client:
            response = await client.post(
                f"{ELEVENLABS_BASE_URL}/text-to-speech/{voice_id}",
                params={"output_format": "mp3_44100_128"},
                headers={"xi-api-key": self.api_key, "Content-Type": "application/json"},
                json={
                    "text": text,
                    "model_id": model,
                    "voice_settings": {
                        "stability": 0.5,
                        "similarity_boost": 0.75,
                        "style": 0.5,
                        "use_speaker_boost": True,
                    },
                },
            )

        if response.status_code >= 400:
            logger.error(f"❌ ElevenLabs TTS error {response.status_code}: {response.text[:300]}")
            raise VoiceError(f"ElevenLabs API error: {response.status_code}")

        return base64.b64encode(response.content).decode("ascii")

    async def speech_to_text(
        self,
        audio_url: Optional[str] = None,
        audio_base64: Optional[str] = None,
        language_code: str = "por",
    ) -> str:
        """Transcribe audio given by URL or base64 payload"""
        async with httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT) as client:
            if audio_base64:
                audio = base64.b64decode(audio_base64)
            elif audio_url:
                audio_response = await client.get(audio_url, follow_redirects=True)
                if audio_response.status_code >= 400:
                    raise VoiceError("Failed to fetch audio from URL")
                audio = audio_response.content
            else:
                raise VoiceError("No audio data provided (audio_base64 or audio_url required)")

            logger.info(f"🔄 Transcribing audio, size: {len(audio)} bytes, language: {language_code}")
            response = await client.post(
                f"{ELEVENLABS_BASE_URL}/speech-to-text",
                headers={"xi-api-key": self.api_key},
                data={
                    "model_id": DEFAULT_STT_MODEL,
                    "language_code": language_code,
                    "tag_audio_events": "false",
                    "diarize": "false",
                },
                files={"file": ("audio.ogg", audio, "audio/ogg")},
            )

        if response.status_code >= 400:
            logger.error(f"❌ ElevenLabs STT error {response.status_code}: {response.text[:300]}")
            raise VoiceError(f"ElevenLabs API error: {response.status_code}")

        return response.json().get("text") or ""
