from typing import Optional, List
from sqlalchemy.orm import Session
from .models import Persona


def get_default_persona(db: Session, workspace_id: str) -> Optional[Persona]:
    return db.query(Persona).filter(
        Persona.workspace_id == workspace_id,
        Persona.is_default.is_(True)
    ).first()


def get_personas(db: Session, workspace_id: str) -> List[Persona]:
    return db.query(Persona).filter(Persona.workspace_id == workspace_id).order_by(Persona.created_at).all()


def get_persona(db: Session, persona_id: str, workspace_id: str) -> Optional[Persona]:
    return db.query(Persona).filter(Persona.id == persona_id, Persona.workspace_id == workspace_id).first()


def clear_default(db: Session, workspace_id: str, keep_id: Optional[str] = None) -> None:
    """Only one default persona per workspace"""
    query = db.query(Persona).filter(Persona.workspace_id == workspace_id, Persona.is_default.is_(True))
    if keep_id:
        query = query.filter(Persona.id != keep_id)
    query.update({Persona.is_default: False}, synchronize_session="fetch")
