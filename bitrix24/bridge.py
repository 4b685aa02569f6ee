"""
Mirrors WhatsApp traffic into Bitrix24: leads, timeline activities and Open Lines.
"""
import logging
from typing import Optional, Any, Dict
from sqlalchemy.orm import Session
from config import settings
from config.database import SessionLocal
from contacts.crud import get_contact, update_contact_metadata
from contacts.models import Contact
from conversations.models import Message
from integrations.crud import record_integration_error
from integrations.models import Integration
from .client import Bitrix24Client, Bitrix24Error, Bitrix24AuthError

logger = logging.getLogger(__name__)

LEAD_OWNER_TYPE_ID = 1
ACTIVITY_TYPE_ID = 6
DEFAULT_LINE_ID = "1"


def _phone_value(contact: Contact) -> str:
    return f"+{contact.phone_number}"


async def find_lead_by_phone(client: Bitrix24Client, phone_number: str) -> Optional[str]:
    result = await client.call("crm.lead.list", {
        "filter": {"PHONE": f"+{phone_number}"},
        "select": ["ID"],
    })
    if result:
        return str(result[0]["ID"])
    return None


async def create_lead(client: Bitrix24Client, contact: Contact) -> str:
    result = await client.call("crm.lead.add", {
        "fields": {
            "TITLE": f"WhatsApp - {contact.display_name}",
            "NAME": contact.name or contact.push_name or contact.phone_number,
            "PHONE": [{"VALUE": _phone_value(contact), "VALUE_TYPE": "MOBILE"}],
            "SOURCE_ID": "OTHER",
            "SOURCE_DESCRIPTION": "WhatsApp",
            "OPENED": "Y",
        }
    })
    return str(result)


async def ensure_lead(db: Session, client: Bitrix24Client, contact: Contact) -> str:
    """Return the contact's Bitrix24 lead id, searching by phone before creating one"""
    metadata = contact.metadata_ or {}
    lead_id = metadata.get("bitrix24_lead_id")
    if lead_id:
        return str(lead_id)

    lead_id = await find_lead_by_phone(client, contact.phone_number)
    if lead_id:
        logger.info(f"Found existing Bitrix24 lead {lead_id} for {contact.phone_number}")
    else:
        lead_id = await create_lead(client, contact)
        logger.info(f"✅ Created Bitrix24 lead {lead_id} for {contact.phone_number}")

    update_contact_metadata(db, contact, bitrix24_lead_id=lead_id)
    return lead_id


async def add_message_activity(client: Bitrix24Client, lead_id: str, contact: Contact, message: Message) -> Any:
    incoming = message.direction == "incoming"
    return await client.call("crm.activity.add", {
        "fields": {
            "OWNER_TYPE_ID": LEAD_OWNER_TYPE_ID,
            "OWNER_ID": lead_id,
            "TYPE_ID": ACTIVITY_TYPE_ID,
            "SUBJECT": f"WhatsApp {'recebido de' if incoming else 'enviado para'} {contact.display_name}",
            "DESCRIPTION": message.content or f"[{message.message_type}]",
            "DESCRIPTION_TYPE": 1,
            "DIRECTION": 1 if incoming else 2,
            "COMPLETED": "Y",
            "RESPONSIBLE_ID": client.config.get("responsible_id", 1),
            "COMMUNICATIONS": [{
                "VALUE": _phone_value(contact),
                "ENTITY_ID": lead_id,
                "ENTITY_TYPE_ID": LEAD_OWNER_TYPE_ID,
            }],
        }
    })


def build_open_lines_payload(config: Dict[str, Any], contact: Contact, message: Message) -> Dict[str, Any]:
    user = {"id": contact.phone_number, "name": contact.display_name}
    if contact.profile_picture_url:
        user["picture"] = {"url": contact.profile_picture_url}

    created_at = message.created_at
    return {
        "CONNECTOR": config.get("connector_id") or settings.BITRIX24_CONNECTOR_ID,
        "LINE": str(config.get("line_id") or DEFAULT_LINE_ID),
        "MESSAGES": [{
            "user": user,
            "message": {
                "id": message.whatsapp_message_id or message.id,
                "date": int(created_at.timestamp()) if created_at else None,
                "text": message.content or f"[{message.message_type}]",
            },
            "chat": {"id": contact.phone_number},
        }],
    }


async def forward_to_open_lines(db: Session, client: Bitrix24Client, contact: Contact, message: Message) -> Any:
    result = await client.call("imconnector.send.messages", build_open_lines_payload(client.config, contact, message))

    # The first send tells us which Bitrix24 chat the contact lives in
    ids = result if isinstance(result, dict) else {}
    user_id = ids.get("USER_ID")
    chat_id = ids.get("CHAT_ID")
    if user_id or chat_id:
        update_contact_metadata(
            db,
            contact,
            bitrix24_user_id=str(user_id) if user_id else None,
            bitrix24_chat_id=str(chat_id) if chat_id else None,
        )
    return result


async def sync_inbound_message(db: Session, integration: Integration, message: Message, transport=None) -> Optional[str]:
    """Ensure the lead, log the message as an activity and forward it to Open Lines"""
    contact = get_contact(db, message.contact_id)
    if not contact:
        logger.warning(f"Contact {message.contact_id} not found, skipping Bitrix24 mirror")
        return None

    client = Bitrix24Client(db, integration, transport=transport)
    lead_id = await ensure_lead(db, client, contact)
    await add_message_activity(client, lead_id, contact, message)
    await forward_to_open_lines(db, client, contact, message)
    logger.info(f"✅ Mirrored message {message.id} to Bitrix24 lead {lead_id}")
    return lead_id


async def mirror_inbound_message(integration_id: str, message_id: str):
    """Background entry point: runs in its own session after the webhook response"""
    db = SessionLocal()
    try:
        integration = db.get(Integration, integration_id)
        message = db.get(Message, message_id)
        if not integration or not message:
            logger.warning(f"Bitrix24 mirror skipped: integration {integration_id} or message {message_id} missing")
            return
        await sync_inbound_message(db, integration, message)
    except Bitrix24AuthError as e:
        # Already recorded on the integration row
        logger.error(f"❌ Bitrix24 auth failed while mirroring {message_id}: {str(e)}")
    except Bitrix24Error as e:
        logger.error(f"❌ Bitrix24 mirror failed for {message_id}: {str(e)}")
        integration = db.get(Integration, integration_id)
        if integration:
            record_integration_error(db, integration, str(e))
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Unexpected error mirroring {message_id} to Bitrix24: {str(e)}", exc_info=True)
    finally:
        db.close()
