from fastapi import APIRouter, Request, Depends, HTTPException, BackgroundTasks, Query
from pydantic import ValidationError
from sqlalchemy import orm
from typing import Optional, Dict, Any
from config.database import get_db
from config.logging_config import log_context
from instances.models import Instance
from shared_utils.workspace import is_service_request
from . import wapi, evolution, apibrasil, gupshup
from .base import ProviderError
from .ingestion import process_events
from .outbound import send_message
from .schema import SendMessageRequest
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


async def _read_payload(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    return payload


def _load_instance(db: orm.Session, instance_id: Optional[str], provider: str) -> Instance:
    if not instance_id:
        raise HTTPException(status_code=400, detail="Missing instance_id")
    instance = db.query(Instance).filter(Instance.id == instance_id).first()
    if not instance:
        logger.error(f"{provider} webhook for unknown instance: {instance_id}")
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


def _handle_webhook(db: orm.Session, instance: Instance, events, background_tasks: BackgroundTasks, provider: str):
    try:
        summary = process_events(db, instance, events, background_tasks)
        return {"success": True, **summary}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(
            f"❌ Error processing {provider} webhook: {str(e)}",
            extra=log_context(workspace_id=instance.workspace_id, instance_id=instance.id, provider=provider),
        )
        raise HTTPException(status_code=500, detail=f"Error processing {provider} webhook")


@router.post("/webhooks/wapi")
async def wapi_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    instance_id: Optional[str] = None,
    db: orm.Session = Depends(get_db)
):
    payload = await _read_payload(request)
    instance = _load_instance(db, instance_id, "wapi")
    logger.info(f"W-API event {payload.get('event') or payload.get('type')} for instance {instance.id}")
    return _handle_webhook(db, instance, wapi.parse_webhook(payload), background_tasks, "wapi")


@router.post("/webhooks/evolution")
async def evolution_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    instance_id: Optional[str] = None,
    db: orm.Session = Depends(get_db)
):
    payload = await _read_payload(request)
    if payload.get("action") == "health_check":
        return {"status": "ok", "function": "evolution-webhook"}

    instance = _load_instance(db, instance_id or payload.get("instance_id"), "evolution")
    logger.info(f"Evolution event {payload.get('event')} for instance {instance.id}")
    return _handle_webhook(db, instance, evolution.parse_webhook(payload), background_tasks, "evolution")


@router.post("/webhooks/apibrasil")
async def apibrasil_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    instance_id: Optional[str] = Query(None, alias="instanceId"),
    db: orm.Session = Depends(get_db)
):
    payload = await _read_payload(request)
    instance = _load_instance(db, instance_id, "apibrasil")
    logger.info(f"APIBrasil event {payload.get('event') or payload.get('type')} for instance {instance.id}")
    return _handle_webhook(db, instance, apibrasil.parse_webhook(payload), background_tasks, "apibrasil")


@router.post("/webhooks/gupshup")
async def gupshup_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    instance_id: Optional[str] = Query(None, alias="instanceId"),
    db: orm.Session = Depends(get_db)
):
    payload = await _read_payload(request)
    instance = _load_instance(db, instance_id, "gupshup")
    logger.info(f"Gupshup event {payload.get('type')} for instance {instance.id}")
    return _handle_webhook(db, instance, gupshup.parse_webhook(payload), background_tasks, "gupshup")


@router.post("/messages/send")
async def send_message_endpoint(request: Request, db: orm.Session = Depends(get_db)):
    """
    Send a message through the instance's provider.

    Accepts snake_case or camelCase fields. Calls from a dashboard user default to the
    "operator" source, which hands the conversation over to a human.
    """
    payload = await _read_payload(request)
    try:
        send_request = SendMessageRequest.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid send request: {e.errors()[0].get('msg')}")

    service = is_service_request(request)
    if not send_request.source:
        send_request.source = "api" if service else "operator"
    workspace_id = getattr(request.state, "workspace_id", None)
    if not service and not workspace_id:
        raise HTTPException(status_code=400, detail="Workspace ID missing in headers")

    try:
        result = await send_message(db, send_request, workspace_id=workspace_id)
        return result
    except HTTPException:
        raise
    except ProviderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error sending message: {str(e)}")
        raise HTTPException(status_code=500, detail="Error sending message")
