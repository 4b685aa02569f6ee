"""
Outbound send adapter: resolves the instance, contact and provider client for a
normalized send request, calls the vendor and records the outgoing message.
"""
import logging
from typing import Optional
from fastapi import HTTPException
from sqlalchemy.orm import Session
from config import settings
from config.database import utcnow
from contacts.crud import get_contact, upsert_contact
from conversations.crud import get_conversation, upsert_open_conversation, create_message
from instances.models import Instance
from integrations.crud import get_active_integration
from .base import BaseProviderClient, normalize_phone
from .wapi import WapiClient
from .evolution import EvolutionClient
from .apibrasil import ApiBrasilClient
from .gupshup import GupshupClient
from .schema import SendMessageRequest, SendResult

logger = logging.getLogger(__name__)

# Sends from these sources are made by a person and take the conversation off AI
OPERATOR_SOURCES = {"operator", "bitrix24", "dashboard"}


def is_operator_source(source: Optional[str]) -> bool:
    return source in OPERATOR_SOURCES


def build_client(db: Session, instance: Instance) -> BaseProviderClient:
    """Provider client for an instance, with credentials from the instance or its workspace integration"""
    config = instance.config

    if instance.provider_type == "wapi":
        integration = get_active_integration(db, instance.workspace_id, "wapi")
        api_key = config.get("api_key") or (integration.config.get("api_key") if integration else None)
        instance_key = config.get("instance_key")
        if not api_key or not instance_key:
            raise HTTPException(status_code=400, detail="W-API configuration incomplete")
        return WapiClient(api_key=api_key, instance_key=instance_key)

    if instance.provider_type == "evolution":
        integration = get_active_integration(db, instance.workspace_id, "evolution")
        integration_config = integration.config if integration else {}
        server_url = config.get("server_url") or integration_config.get("server_url") or settings.EVOLUTION_API_URL
        api_key = config.get("api_key") or integration_config.get("api_key") or settings.EVOLUTION_API_KEY
        instance_name = config.get("instance_name")
        if not server_url or not api_key or not instance_name:
            raise HTTPException(status_code=400, detail="Evolution API configuration incomplete")
        return EvolutionClient(server_url=server_url, api_key=api_key, instance_name=instance_name)

    if instance.provider_type == "apibrasil":
        if not config.get("device_token"):
            raise HTTPException(status_code=400, detail="APIBrasil credentials not configured")
        return ApiBrasilClient(credentials=config)

    if instance.provider_type == "gupshup":
        integration = get_active_integration(db, instance.workspace_id, "gupshup")
        integration_config = integration.config if integration else {}
        api_key = config.get("api_key") or integration_config.get("api_key")
        app_name = config.get("app_name") or config.get("app_id")
        source_number = normalize_phone(config.get("source_number") or instance.phone_number)
        if not api_key or not app_name or not source_number:
            raise HTTPException(status_code=400, detail="Gupshup configuration incomplete")
        return GupshupClient(api_key=api_key, app_name=app_name, source_number=source_number)

    raise HTTPException(status_code=400, detail=f"Unsupported provider: {instance.provider_type}")


async def send_message(
    db: Session,
    request: SendMessageRequest,
    workspace_id: Optional[str] = None,
) -> SendResult:
    """
    Send a message through the instance's provider and persist it.

    Raises HTTPException for missing or invalid parameters and ProviderError when the
    vendor rejects the call.
    """
    conversation = None
    if request.conversation_id:
        conversation = get_conversation(db, request.conversation_id, workspace_id)
        if not conversation:
            raise HTTPException(status_code=404, detail="Conversation not found")

    instance_id = request.instance_id or (conversation.instance_id if conversation else None)
    if not instance_id:
        raise HTTPException(status_code=400, detail="instance_id is required")

    query = db.query(Instance).filter(Instance.id == instance_id)
    if workspace_id:
        query = query.filter(Instance.workspace_id == workspace_id)
    instance = query.first()
    if not instance:
        raise HTTPException(status_code=404, detail="Instance not found")

    if not (request.message or request.has_media or request.buttons or request.sections):
        raise HTTPException(status_code=400, detail="message or media is required")

    if request.contact_id:
        contact = get_contact(db, request.contact_id, instance.workspace_id)
        if not contact:
            raise HTTPException(status_code=404, detail="Contact not found")
    elif conversation:
        contact = conversation.contact
    elif normalize_phone(request.phone_number):
        contact, _ = upsert_contact(db, instance.workspace_id, instance.id, normalize_phone(request.phone_number))
        db.commit()
    else:
        raise HTTPException(status_code=400, detail="contact_id or phone_number is required")

    if instance.status != "connected":
        raise HTTPException(status_code=400, detail="Instance is not connected")

    client = build_client(db, instance)
    whatsapp_message_id, _ = await client.send(contact.phone_number, request)

    if not conversation:
        conversation, _ = upsert_open_conversation(db, instance.workspace_id, instance.id, contact.id)

    operator = is_operator_source(request.source)
    is_from_bot = request.is_from_bot if request.is_from_bot is not None else not operator
    message = create_message(
        db,
        conversation,
        direction="outgoing",
        message_type=request.message_type if request.message_type in ("text", "image", "audio", "ptt", "video", "document") else "text",
        content=request.message or request.caption,
        media_url=request.media_url,
        status="sent",
        whatsapp_message_id=whatsapp_message_id,
        is_from_bot=is_from_bot,
        metadata_={"source": request.source, "provider": instance.provider_type},
    )

    conversation.last_message_at = utcnow()
    conversation.unread_count = 0
    if operator:
        conversation.attendance_mode = "human"
    db.commit()

    logger.info(f"✅ Sent {message.message_type} via {instance.provider_type} to {contact.phone_number} (source: {request.source})")
    return SendResult(
        message_id=message.id,
        whatsapp_message_id=whatsapp_message_id,
        conversation_id=conversation.id,
        attendance_mode=conversation.attendance_mode,
    )
