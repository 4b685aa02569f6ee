from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm, or_, func
from typing import Optional
from config.database import get_db
from shared_utils.workspace import get_workspace_id
from .crud import get_contact
from .models import Contact
from .schema import ContactUpdate, ContactResponse
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

PAGE_SIZE = 50


@router.get("/contacts")
def list_contacts(
    instance_id: Optional[str] = None,
    search: Optional[str] = None,
    page_no: int = 1,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    query = db.query(Contact).filter(Contact.workspace_id == workspace_id)
    if instance_id:
        query = query.filter(Contact.instance_id == instance_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Contact.phone_number.like(pattern),
            Contact.name.ilike(pattern),
            Contact.push_name.ilike(pattern),
        ))

    total_contacts = query.with_entities(func.count(Contact.id)).scalar()
    contacts = query.order_by(Contact.created_at.desc()).offset(PAGE_SIZE * (max(page_no, 1) - 1)).limit(PAGE_SIZE).all()

    return {
        "contacts": [ContactResponse.from_contact(c) for c in contacts],
        "page_no": page_no,
        "page_size": PAGE_SIZE,
        "total_contacts": total_contacts,
        "total_pages": (total_contacts + PAGE_SIZE - 1) // PAGE_SIZE,
    }


@router.get("/contacts/{contact_id}", response_model=ContactResponse)
def read_contact(contact_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    contact = get_contact(db, contact_id, workspace_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return ContactResponse.from_contact(contact)


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
def update_contact(
    contact_id: str,
    body: ContactUpdate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    contact = get_contact(db, contact_id, workspace_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")

    try:
        if body.name is not None:
            contact.name = body.name
        if body.tags is not None:
            contact.tags = body.tags
        if body.metadata is not None:
            contact.metadata_ = {**(contact.metadata_ or {}), **body.metadata}
        db.commit()
        db.refresh(contact)
        return ContactResponse.from_contact(contact)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error updating contact {contact_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating contact")
