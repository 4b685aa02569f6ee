from fastapi import APIRouter, HTTPException
from .elevenlabs import ElevenLabsClient, VoiceError, DEFAULT_TTS_MODEL
from .schema import TextToSpeechRequest, SpeechToTextRequest
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/voice/tts")
async def text_to_speech(body: TextToSpeechRequest):
    try:
        audio_base64 = await ElevenLabsClient().text_to_speech(body.text, body.voice, body.model or DEFAULT_TTS_MODEL)
        return {"success": True, "audio_base64": audio_base64, "content_type": "audio/mpeg"}
    except VoiceError as e:
        logger.error(f"❌ TTS failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/voice/stt")
async def speech_to_text(body: SpeechToTextRequest):
    if not body.audio_url and not body.audio_base64:
        raise HTTPException(status_code=400, detail="audio_url or audio_base64 is required")
    try:
        text = await ElevenLabsClient().speech_to_text(body.audio_url, body.audio_base64, body.language_code)
        return {"success": True, "text": text}
    except VoiceError as e:
        logger.error(f"❌ STT failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
