from fastapi import APIRouter, Request, Depends, HTTPException
from sqlalchemy import orm
from config.database import get_db
from providers.base import ProviderError
from shared_utils.workspace import is_service_request
from .gateway import GatewayError
from .schema import ProcessMessageRequest, ProcessMessageResponse
from .service import process_message
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/ai/process-message", response_model=ProcessMessageResponse)
async def process_message_endpoint(
    body: ProcessMessageRequest,
    request: Request,
    db: orm.Session = Depends(get_db)
):
    """Compose and send an AI reply; 429/402 from the AI gateway are passed through"""
    workspace_id = getattr(request.state, "workspace_id", None)
    if not workspace_id and not is_service_request(request):
        raise HTTPException(status_code=400, detail="Workspace ID missing in headers")

    try:
        result = await process_message(db, body, workspace_id=workspace_id)
        if result is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return result
    except HTTPException:
        raise
    except GatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ProviderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error in AI processing for conversation {body.conversation_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error processing message")
