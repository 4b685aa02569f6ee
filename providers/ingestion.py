"""
Shared inbound pipeline for every provider webhook.

Each provider module turns its payload into normalized events; this module applies
them: connection updates on the instance, delivery statuses on messages, and inbound
messages through contact upsert -> conversation upsert -> message insert -> dispatch.
"""
import logging
from typing import List, Dict, Any, Optional
import httpx
from fastapi import BackgroundTasks
from sqlalchemy.orm import Session
from config import settings
from config.logging_config import log_context
from contacts.crud import upsert_contact
from conversations.crud import upsert_open_conversation, find_message_by_whatsapp_id, create_message, update_message_status
from conversations.models import Message
from instances.models import Instance
from integrations.crud import get_active_integration
from shared_utils.service_client import ServiceClient
from bitrix24.bridge import mirror_inbound_message
from .schema import InboundMessage, StatusUpdate, ConnectionUpdate, WebhookEvent

logger = logging.getLogger(__name__)

AI_PROCESS_PATH = "/ai/process-message"


async def dispatch_to_ai(workspace_id: str, payload: Dict[str, Any], transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
    """Fire-and-forget hand-off to the flow engine or the AI responder; never raises"""
    target = settings.FLOW_ENGINE_URL or AI_PROCESS_PATH
    context = log_context(workspace_id=workspace_id, conversation_id=payload.get("conversation_id"))
    try:
        await ServiceClient(transport=transport).post(target, payload, workspace_id=workspace_id)
        logger.info(f"✅ AI dispatch accepted by {target}", extra=context)
    except Exception as e:
        logger.error(f"❌ AI dispatch to {target} failed: {str(e)}", extra=context)


def apply_connection_update(db: Session, instance: Instance, event: ConnectionUpdate) -> None:
    instance.status = event.status
    if event.phone_number:
        instance.phone_number = event.phone_number
    if event.profile_picture_url:
        instance.profile_picture_url = event.profile_picture_url
    if event.status == "qr_pending":
        instance.qr_code = event.qr_code
    else:
        instance.qr_code = None
    db.commit()
    logger.info(f"Instance is now {instance.status}", extra=log_context(workspace_id=instance.workspace_id, instance_id=instance.id, provider=instance.provider_type))


def ingest_message(
    db: Session,
    instance: Instance,
    event: InboundMessage,
    background_tasks: BackgroundTasks,
) -> Dict[str, Any]:
    """Persist one inbound message and schedule its side effects"""
    existing = find_message_by_whatsapp_id(db, instance.id, event.whatsapp_message_id)
    if existing:
        reason = "echo" if event.from_me else "duplicate"
        logger.info(f"Skipping {reason} message {event.whatsapp_message_id}", extra=log_context(instance_id=instance.id, provider=instance.provider_type))
        return {"skipped": reason, "message_id": existing.id}

    incoming = not event.from_me
    # On our own messages the push name is the operator's, not the contact's
    contact, contact_created = upsert_contact(
        db,
        workspace_id=instance.workspace_id,
        instance_id=instance.id,
        phone_number=event.phone_number,
        push_name=event.push_name if incoming else None,
        profile_picture_url=event.profile_picture_url if incoming else None,
    )
    conversation, _ = upsert_open_conversation(
        db,
        workspace_id=instance.workspace_id,
        instance_id=instance.id,
        contact_id=contact.id,
        unread_increment=1 if incoming else 0,
    )

    source = f"{instance.provider_type}_webhook" if incoming else f"{instance.provider_type}_echo"
    message = create_message(
        db,
        conversation,
        direction="incoming" if incoming else "outgoing",
        message_type=event.message_type,
        content=event.content,
        media_url=event.media_url,
        media_mime_type=event.media_mime_type,
        status="delivered" if incoming else "sent",
        whatsapp_message_id=event.whatsapp_message_id,
        is_from_bot=False,
        metadata_={"source": source, "push_name": event.push_name},
    )

    result = {"message_id": message.id, "conversation_id": conversation.id, "contact_created": contact_created, "dispatched": False}
    if not incoming:
        return result

    if conversation.attendance_mode == "ai" and (message.content or message.media_url):
        background_tasks.add_task(dispatch_to_ai, instance.workspace_id, build_dispatch_payload(message))
        result["dispatched"] = True
    else:
        logger.info(
            f"Conversation in {conversation.attendance_mode} mode, AI not triggered",
            extra=log_context(workspace_id=conversation.workspace_id, conversation_id=conversation.id),
        )

    crm = get_active_integration(db, instance.workspace_id, "bitrix24")
    if crm:
        background_tasks.add_task(mirror_inbound_message, crm.id, message.id)

    return result


def build_dispatch_payload(message: Message) -> Dict[str, Any]:
    return {
        "conversation_id": message.conversation_id,
        "message_id": message.id,
        "instance_id": message.instance_id,
        "contact_id": message.contact_id,
        "content": message.content,
        "message_type": message.message_type,
    }


def process_events(
    db: Session,
    instance: Instance,
    events: List[WebhookEvent],
    background_tasks: BackgroundTasks,
) -> Dict[str, Any]:
    summary = {"messages": 0, "skipped": 0, "statuses": 0, "connection": None}

    for event in events:
        if isinstance(event, ConnectionUpdate):
            apply_connection_update(db, instance, event)
            summary["connection"] = instance.status
        elif isinstance(event, StatusUpdate):
            if update_message_status(db, instance.id, event.whatsapp_message_id, event.status):
                summary["statuses"] += 1
        elif isinstance(event, InboundMessage):
            result = ingest_message(db, instance, event, background_tasks)
            if result.get("skipped"):
                summary["skipped"] += 1
            else:
                summary["messages"] += 1

    return summary
