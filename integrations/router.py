from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm
from typing import List
from config.database import get_db
from shared_utils.workspace import get_workspace_id
from .crud import get_integrations, upsert_integration
from .models import Integration, INTEGRATION_TYPES
from .schema import IntegrationUpsert, IntegrationResponse
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


# Credentials are write-only: responses never echo `config`
@router.put("/integrations/{integration_type}", response_model=IntegrationResponse)
def save_integration(
    integration_type: str,
    body: IntegrationUpsert,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    if integration_type not in INTEGRATION_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {', '.join(INTEGRATION_TYPES)}")
    try:
        integration = upsert_integration(db, workspace_id, integration_type, body.config, body.is_active)
        logger.info(f"✅ Saved {integration_type} integration for workspace {workspace_id}")
        return integration
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error saving {integration_type} integration: {str(e)}")
        raise HTTPException(status_code=500, detail="Error saving integration")


@router.get("/integrations", response_model=List[IntegrationResponse])
def list_integrations(workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return get_integrations(db, workspace_id)


@router.delete("/integrations/{integration_type}")
def delete_integration(integration_type: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    integration = db.query(Integration).filter(
        Integration.workspace_id == workspace_id,
        Integration.type == integration_type
    ).first()
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    db.delete(integration)
    db.commit()
    return {"message": "Integration deleted successfully"}
