from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm
from typing import List
from config.database import get_db
from shared_utils.workspace import get_workspace_id
from .models import Instance, INSTANCE_STATUSES, PROVIDER_TYPES
from .schema import InstanceCreate, InstanceUpdate, InstanceResponse
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_instance(db: orm.Session, instance_id: str, workspace_id: str) -> Instance:
    instance = db.query(Instance).filter(
        Instance.id == instance_id,
        Instance.workspace_id == workspace_id
    ).first()
    if not instance:
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


@router.post("/instances", response_model=InstanceResponse)
def create_instance(
    body: InstanceCreate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    if body.provider_type not in PROVIDER_TYPES:
        raise HTTPException(status_code=400, detail=f"provider_type must be one of {', '.join(PROVIDER_TYPES)}")

    try:
        instance = Instance(
            workspace_id=workspace_id,
            name=body.name,
            provider_type=body.provider_type,
            phone_number=body.phone_number,
            provider_config=body.provider_config or {},
        )
        db.add(instance)
        db.commit()
        db.refresh(instance)
        logger.info(f"✅ Created {instance.provider_type} instance {instance.id} for workspace {workspace_id}")
        return instance
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error creating instance: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating instance")


@router.get("/instances", response_model=List[InstanceResponse])
def list_instances(workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return db.query(Instance).filter(
        Instance.workspace_id == workspace_id
    ).order_by(Instance.created_at.asc()).all()


@router.get("/instances/{instance_id}", response_model=InstanceResponse)
def get_instance(instance_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return _get_instance(db, instance_id, workspace_id)


@router.patch("/instances/{instance_id}", response_model=InstanceResponse)
def update_instance(
    instance_id: str,
    body: InstanceUpdate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    instance = _get_instance(db, instance_id, workspace_id)
    updates = body.model_dump(exclude_unset=True)
    if "status" in updates and updates["status"] not in INSTANCE_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid instance status")

    try:
        if "provider_config" in updates:
            # Merge so credentials not sent are kept
            instance.provider_config = {**instance.config, **(updates.pop("provider_config") or {})}
        for key, value in updates.items():
            setattr(instance, key, value)
        db.commit()
        db.refresh(instance)
        return instance
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error updating instance {instance_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating instance")


@router.delete("/instances/{instance_id}")
def delete_instance(instance_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    instance = _get_instance(db, instance_id, workspace_id)
    try:
        db.delete(instance)
        db.commit()
        logger.info(f"Deleted instance {instance_id}")
        return {"message": "Instance deleted successfully"}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error deleting instance {instance_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error deleting instance")
