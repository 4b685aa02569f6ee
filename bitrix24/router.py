from fastapi import APIRouter, Request, Depends, HTTPException
from sqlalchemy import orm
from datetime import timedelta
from typing import Optional, Dict, Any
import logging
import re
import phonenumbers
from config.database import get_db, utcnow
from contacts.crud import get_contact, get_contact_by_phone, find_contact_by_metadata
from integrations.crud import get_active_integration, upsert_integration
from integrations.models import Integration
from providers.base import ProviderError, normalize_phone
from providers.outbound import send_message
from providers.schema import SendMessageRequest
from shared_utils.workspace import get_workspace_id
from .bridge import ensure_lead
from .client import Bitrix24Client, Bitrix24Error, Bitrix24AuthError
from .schema import SyncContactRequest, SyncContactResponse, Bitrix24ConnectRequest

router = APIRouter()
logger = logging.getLogger(__name__)

SMS_PHONE_KEYS = ("PHONE_NUMBER", "phone_number", "MESSAGE_TO", "message_to", "properties[PHONE_NUMBER]", "properties[phone_number]")
SMS_TEXT_KEYS = ("MESSAGE_TEXT", "message_text", "MESSAGE_BODY", "message", "properties[MESSAGE_TEXT]", "properties[message_text]")
SMS_MEMBER_KEYS = ("AUTH_MEMBER_ID", "auth_member_id", "member_id", "MEMBER_ID", "auth[member_id]")


def _first(params: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = params.get(key)
        if value:
            return str(value)
    return None


def format_phone_number(raw: str, region: str = "BR") -> str:
    """Digits-only E.164 (no plus); numbers without a country code are read as Brazilian"""
    cleaned = re.sub(r"[^\d+]", "", raw or "")
    try:
        number = phonenumbers.parse(cleaned, None if cleaned.startswith("+") else region)
        if phonenumbers.is_valid_number(number):
            return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164).lstrip("+")
    except phonenumbers.NumberParseException:
        pass

    digits = re.sub(r"\D", "", cleaned)
    if len(digits) in (10, 11) and not digits.startswith("55"):
        return f"55{digits}"
    return digits


def find_integration_for_portal(db: orm.Session, member_id: Optional[str] = None, domain: Optional[str] = None) -> Optional[Integration]:
    """Match an active Bitrix24 integration by portal member_id, then by domain"""
    query = db.query(Integration).filter(Integration.type == "bitrix24", Integration.is_active.is_(True))
    if member_id:
        integration = query.filter(Integration.config["member_id"].as_string() == member_id).first()
        if integration:
            return integration
    if domain:
        integration = query.filter(Integration.config["domain"].as_string() == domain).first()
        if integration:
            return integration
    return None


def unflatten_form(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Nest PHP-style form keys: "data[MESSAGES][0][message][text]" becomes
    {"data": {"MESSAGES": {"0": {"message": {"text": ...}}}}}.
    """
    nested: Dict[str, Any] = {}
    for key, value in params.items():
        parts = re.findall(r"[^\[\]]+", key)
        if not parts:
            continue
        target = nested
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = value
    return nested


async def _form_or_json(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON payload")
        return payload if isinstance(payload, dict) else {}
    form = await request.form()
    return dict(form)


@router.post("/bitrix24/connect")
def connect_bitrix24(
    connect: Bitrix24ConnectRequest,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    if not connect.webhook_url and not (connect.domain and connect.access_token):
        raise HTTPException(status_code=400, detail="webhook_url or domain with access_token is required")

    config = connect.model_dump(exclude_none=True, exclude={"expires_in", "extra"})
    config.update(connect.extra or {})
    if connect.access_token:
        expires_at = utcnow() + timedelta(seconds=connect.expires_in or 3600)
        config["token_expires_at"] = expires_at.isoformat()

    try:
        integration = upsert_integration(db, workspace_id, "bitrix24", config)
        logger.info(f"✅ Bitrix24 connected for workspace {workspace_id}")
        return {"success": True, "integration_id": integration.id}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error connecting Bitrix24: {str(e)}")
        raise HTTPException(status_code=500, detail="Error connecting Bitrix24")


@router.post("/bitrix24/sync-contact", response_model=SyncContactResponse)
async def sync_contact(
    sync: SyncContactRequest,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    """Find or create the Bitrix24 lead for a contact"""
    contact = get_contact(db, sync.contact_id, workspace_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")

    integration = get_active_integration(db, workspace_id, "bitrix24")
    if not integration:
        raise HTTPException(status_code=400, detail="Bitrix24 integration not configured")

    try:
        lead_id = await ensure_lead(db, Bitrix24Client(db, integration), contact)
        return SyncContactResponse(lead_id=lead_id)
    except Bitrix24AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except Bitrix24Error as e:
        logger.error(f"❌ Bitrix24 sync failed for contact {contact.id}: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/webhooks/bitrix24")
async def bitrix24_event(request: Request, db: orm.Session = Depends(get_db)):
    """
    Bitrix24 event handler.

    ONIMCONNECTORMESSAGEADD carries an operator reply from Open Lines, which is sent to
    the contact over WhatsApp and takes the conversation off AI.
    """
    # Bitrix24 posts events form-encoded; JSON is accepted too
    payload = unflatten_form(await _form_or_json(request))
    event = payload.get("event")
    logger.info(f"Bitrix24 event: {event}")

    if event != "ONIMCONNECTORMESSAGEADD":
        return {"success": True, "ignored": True}

    data = payload.get("data") or {}
    messages = data.get("MESSAGES") or []
    if isinstance(messages, dict):
        messages = [messages[key] for key in sorted(messages, key=lambda k: int(k) if str(k).isdigit() else 0)]
    item = messages[0] if messages else data
    user_id = (item.get("im") or {}).get("chat_id") or (item.get("user") or {}).get("id")
    text = (item.get("message") or {}).get("text")
    if not user_id or not text:
        raise HTTPException(status_code=400, detail="Missing chat or message text")

    auth = payload.get("auth") or {}
    integration = find_integration_for_portal(db, auth.get("member_id"), auth.get("domain"))
    if not integration:
        raise HTTPException(status_code=404, detail="Bitrix24 portal not found")
    instance_id = (integration.config or {}).get("instance_id")
    if not instance_id:
        raise HTTPException(status_code=400, detail="Bitrix24 integration has no WhatsApp instance")

    contact = (
        find_contact_by_metadata(db, instance_id, "bitrix24_user_id", user_id)
        or find_contact_by_metadata(db, instance_id, "bitrix24_chat_id", user_id)
        or get_contact_by_phone(db, instance_id, normalize_phone(str(user_id)))
    )
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")

    send_request = SendMessageRequest(
        instance_id=instance_id,
        contact_id=contact.id,
        message=text,
        source="bitrix24",
        is_from_bot=False,
    )
    try:
        result = await send_message(db, send_request, workspace_id=integration.workspace_id)
        return {"success": True, "message_id": result.message_id}
    except ProviderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/bitrix24/sms")
async def bitrix24_sms(request: Request, db: orm.Session = Depends(get_db)):
    """
    Bitrix24 SMS provider callback: sends the SMS text over WhatsApp.

    Bitrix24 posts form-encoded fields whose names vary between portal versions.
    """
    params = await _form_or_json(request)
    phone = _first(params, SMS_PHONE_KEYS)
    text = _first(params, SMS_TEXT_KEYS)
    if not phone or not text:
        logger.error(f"Bitrix24 SMS missing parameters: {sorted(params.keys())}")
        raise HTTPException(status_code=400, detail="Missing phone number or message text")

    integration = find_integration_for_portal(db, _first(params, SMS_MEMBER_KEYS))
    if not integration:
        raise HTTPException(status_code=404, detail="Bitrix24 portal not found")
    instance_id = (integration.config or {}).get("instance_id")
    if not instance_id:
        raise HTTPException(status_code=400, detail="No WhatsApp instance configured for Bitrix24")

    send_request = SendMessageRequest(
        instance_id=instance_id,
        phone_number=format_phone_number(phone),
        message=text,
        source="bitrix24",
        is_from_bot=False,
    )
    try:
        result = await send_message(db, send_request, workspace_id=integration.workspace_id)
    except HTTPException:
        raise
    except ProviderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Bitrix24 SMS send failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Error sending SMS")

    logger.info(f"✅ Bitrix24 SMS {params.get('MESSAGE_ID')} sent to {send_request.phone_number}")
    return {"result": True, "message_id": params.get("MESSAGE_ID") or result.message_id, "status": "sent"}
