"""
AI response composition: persona + recent history + keyword-matched knowledge ->
chat-completion gateway -> optional TTS -> relay through the instance's provider.
"""
import logging
import httpx
from typing import List, Dict, Optional
from sqlalchemy.orm import Session
from conversations.crud import get_conversation, get_conversation_message, get_recent_messages
from conversations.models import Message
from knowledge.search import search_knowledge
from personas.crud import get_default_persona
from providers.outbound import send_message
from providers.schema import SendMessageRequest
from voice.elevenlabs import ElevenLabsClient, VoiceError
from .gateway import ChatCompletionGateway
from .schema import ProcessMessageRequest, ProcessMessageResponse

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "Você é um assistente prestativo e profissional. Responda de forma clara e objetiva."
DEFAULT_TEMPERATURE = 0.7
HISTORY_LIMIT = 10
KNOWLEDGE_HEADER = "\n\n## Base de Conhecimento\nUse as seguintes informações para responder quando relevante:\n\n"
KNOWLEDGE_SEPARATOR = "\n\n---\n\n"
AUDIO_TYPES = ("audio", "ptt")


def build_system_prompt(base_prompt: str, knowledge: List[str]) -> str:
    if not knowledge:
        return base_prompt
    return base_prompt + KNOWLEDGE_HEADER + KNOWLEDGE_SEPARATOR.join(knowledge)


def build_chat_messages(system_prompt: str, history: List[Message], current_content: Optional[str]) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for message in history:
        text = message.audio_transcription or message.content
        if not text:
            continue
        role = "user" if message.direction == "incoming" else "assistant"
        messages.append({"role": role, "content": text})

    if current_content and not any(m["role"] == "user" and m["content"] == current_content for m in messages):
        messages.append({"role": "user", "content": current_content})
    return messages


async def transcribe_audio(db: Session, message: Message, voice: Optional[ElevenLabsClient] = None) -> Optional[str]:
    """Fill message.audio_transcription from its media; failures leave it empty"""
    if message.audio_transcription:
        return message.audio_transcription
    if message.message_type not in AUDIO_TYPES or not message.media_url:
        return None

    try:
        voice = voice or ElevenLabsClient()
        text = await voice.speech_to_text(audio_url=message.media_url)
    except (VoiceError, httpx.HTTPError) as e:
        logger.error(f"❌ Transcription failed for message {message.id}: {str(e)}")
        return None

    if text:
        message.audio_transcription = text
        db.commit()
        logger.info(f"✅ Transcribed message {message.id}")
    return text or None


async def synthesize_reply(text: str, voice_id: Optional[str], voice: Optional[ElevenLabsClient] = None) -> Optional[str]:
    """Base64 audio for the reply, or None when TTS is unavailable"""
    try:
        voice = voice or ElevenLabsClient()
        return await voice.text_to_speech(text, voice_id)
    except (VoiceError, httpx.HTTPError) as e:
        logger.error(f"❌ TTS failed, falling back to text: {str(e)}")
        return None


async def process_message(
    db: Session,
    request: ProcessMessageRequest,
    workspace_id: Optional[str] = None,
    gateway: Optional[ChatCompletionGateway] = None,
    voice: Optional[ElevenLabsClient] = None,
) -> Optional[ProcessMessageResponse]:
    """
    Generate and deliver an AI reply for the latest message of a conversation.

    Returns None when the conversation does not exist. Gateway errors propagate as
    GatewayError subclasses; TTS and transcription failures never do.
    """
    conversation = get_conversation(db, request.conversation_id, workspace_id)
    if not conversation:
        return None

    if conversation.attendance_mode != "ai":
        logger.info(f"Conversation {conversation.id} is in {conversation.attendance_mode} mode, skipping AI")
        return ProcessMessageResponse(skipped=True)

    trigger = get_conversation_message(db, conversation.id, request.message_id) if request.message_id else None
    message_type = request.message_type or (trigger.message_type if trigger else "text")
    content = request.content or (trigger.content if trigger else None)

    if trigger and trigger.message_type in AUDIO_TYPES:
        content = await transcribe_audio(db, trigger, voice) or content

    if not content:
        logger.info(f"Nothing to answer in conversation {conversation.id}")
        return ProcessMessageResponse(skipped=True)

    persona = get_default_persona(db, conversation.workspace_id)
    base_prompt = persona.system_prompt if persona else DEFAULT_SYSTEM_PROMPT
    temperature = persona.temperature if persona and persona.temperature is not None else DEFAULT_TEMPERATURE

    knowledge = search_knowledge(db, conversation.workspace_id, content)
    history = get_recent_messages(db, conversation.id, HISTORY_LIMIT)
    chat_messages = build_chat_messages(build_system_prompt(base_prompt, knowledge), history, content)

    gateway = gateway or ChatCompletionGateway()
    reply = await gateway.complete(chat_messages, temperature=temperature)

    audio_base64 = None
    if persona and persona.voice_enabled and message_type in AUDIO_TYPES:
        audio_base64 = await synthesize_reply(reply, persona.voice_id, voice)

    send_request = SendMessageRequest(
        instance_id=conversation.instance_id,
        conversation_id=conversation.id,
        message=reply,
        message_type="audio" if audio_base64 else "text",
        audio_base64=audio_base64,
        source="ai",
        is_from_bot=True,
    )
    result = await send_message(db, send_request, workspace_id=conversation.workspace_id)

    logger.info(f"✅ AI reply sent for conversation {conversation.id} ({'audio' if audio_base64 else 'text'})")
    return ProcessMessageResponse(
        response=reply,
        audio_sent=bool(audio_base64),
        knowledge_used=len(knowledge),
        message_id=result.message_id,
    )
