from pydantic import BaseModel
from typing import Optional


class TextToSpeechRequest(BaseModel):
    text: str
    voice: Optional[str] = None
    model: Optional[str] = None


class SpeechToTextRequest(BaseModel):
    audio_url: Optional[str] = None
    audio_base64: Optional[str] = None
    language_code: str = "por"
