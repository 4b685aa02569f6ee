from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from .models import Integration


def get_active_integration(db: Session, workspace_id: str, integration_type: str) -> Optional[Integration]:
    return db.query(Integration).filter(
        Integration.workspace_id == workspace_id,
        Integration.type == integration_type,
        Integration.is_active.is_(True)
    ).first()


def get_integrations(db: Session, workspace_id: str) -> List[Integration]:
    return db.query(Integration).filter(Integration.workspace_id == workspace_id).all()


def upsert_integration(db: Session, workspace_id: str, integration_type: str, config: Dict[str, Any], is_active: bool = True) -> Integration:
    integration = db.query(Integration).filter(
        Integration.workspace_id == workspace_id,
        Integration.type == integration_type
    ).first()

    if integration:
        integration.config = {**(integration.config or {}), **config}
        integration.is_active = is_active
        integration.last_error = None
    else:
        integration = Integration(workspace_id=workspace_id, type=integration_type, config=config, is_active=is_active)
        db.add(integration)

    db.commit()
    db.refresh(integration)
    return integration


def update_integration_config(db: Session, integration: Integration, **values) -> Integration:
    # Reassign so the JSON column is flagged dirty
    integration.config = {**(integration.config or {}), **values}
    db.commit()
    db.refresh(integration)
    return integration


def record_integration_error(db: Session, integration: Integration, error: str) -> None:
    integration.last_error = error[:1000]
    db.commit()
