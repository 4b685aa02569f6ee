from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm
from typing import List
from config.database import get_db
from shared_utils.workspace import get_workspace_id
from .crud import get_personas, get_persona, clear_default
from .models import Persona
from .schema import PersonaCreate, PersonaUpdate, PersonaResponse
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/personas", response_model=PersonaResponse)
def create_persona(body: PersonaCreate, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    try:
        if body.is_default:
            clear_default(db, workspace_id)
        persona = Persona(workspace_id=workspace_id, **body.model_dump())
        db.add(persona)
        db.commit()
        db.refresh(persona)
        logger.info(f"✅ Created persona {persona.name} (default: {persona.is_default})")
        return persona
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error creating persona: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating persona")


@router.get("/personas", response_model=List[PersonaResponse])
def list_personas(workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return get_personas(db, workspace_id)


@router.get("/personas/{persona_id}", response_model=PersonaResponse)
def read_persona(persona_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    persona = get_persona(db, persona_id, workspace_id)
    if not persona:
        raise HTTPException(status_code=404, detail="Persona not found")
    return persona


@router.patch("/personas/{persona_id}", response_model=PersonaResponse)
def update_persona(
    persona_id: str,
    body: PersonaUpdate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    persona = get_persona(db, persona_id, workspace_id)
    if not persona:
        raise HTTPException(status_code=404, detail="Persona not found")

    try:
        updates = body.model_dump(exclude_unset=True)
        if updates.get("is_default"):
            clear_default(db, workspace_id, keep_id=persona.id)
        for key, value in updates.items():
            setattr(persona, key, value)
        db.commit()
        db.refresh(persona)
        return persona
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error updating persona {persona_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating persona")


@router.delete("/personas/{persona_id}")
def delete_persona(persona_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    persona = get_persona(db, persona_id, workspace_id)
    if not persona:
        raise HTTPException(status_code=404, detail="Persona not found")
    db.delete(persona)
    db.commit()
    return {"message": "Persona deleted successfully"}
