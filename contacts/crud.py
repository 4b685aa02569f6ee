import logging
from typing import Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from config.database import generate_uuid, utcnow
from shared_utils.upsert import dialect_insert
from .models import Contact

logger = logging.getLogger(__name__)


def upsert_contact(
    db: Session,
    workspace_id: str,
    instance_id: str,
    phone_number: str,
    push_name: Optional[str] = None,
    profile_picture_url: Optional[str] = None,
) -> Tuple[Contact, bool]:
    """
    Find-or-create a contact keyed on (instance_id, phone_number) in one statement.

    Returns the contact and whether it was created. Existing contacts only pick up
    non-empty names and pictures; `name` is filled from the push name while empty.
    """
    push_name = push_name or None
    profile_picture_url = profile_picture_url or None
    candidate_id = generate_uuid()
    now = utcnow()
    insert = dialect_insert(db, Contact)
    stmt = insert.values(
        id=candidate_id,
        workspace_id=workspace_id,
        instance_id=instance_id,
        phone_number=phone_number,
        name=push_name,
        push_name=push_name,
        profile_picture_url=profile_picture_url,
        tags=[],
        metadata_={},
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["instance_id", "phone_number"],
        set_={
            "push_name": func.coalesce(stmt.excluded.push_name, Contact.push_name),
            "name": func.coalesce(func.nullif(Contact.name, ""), stmt.excluded.push_name),
            "profile_picture_url": func.coalesce(stmt.excluded.profile_picture_url, Contact.profile_picture_url),
            "updated_at": now,
        },
    ).returning(Contact.id)

    contact_id = db.execute(stmt).scalar_one()
    created = contact_id == candidate_id
    contact = db.get(Contact, contact_id, populate_existing=True)

    if created:
        logger.info(f"✅ Created contact {phone_number} on instance {instance_id}")
    return contact, created


def get_contact(db: Session, contact_id: str, workspace_id: Optional[str] = None) -> Optional[Contact]:
    query = db.query(Contact).filter(Contact.id == contact_id)
    if workspace_id:
        query = query.filter(Contact.workspace_id == workspace_id)
    return query.first()


def get_contact_by_phone(db: Session, instance_id: str, phone_number: str) -> Optional[Contact]:
    return db.query(Contact).filter(
        Contact.instance_id == instance_id,
        Contact.phone_number == phone_number
    ).first()


def find_contact_by_metadata(db: Session, instance_id: str, key: str, value: str) -> Optional[Contact]:
    return db.query(Contact).filter(
        Contact.instance_id == instance_id,
        Contact.metadata_[key].as_string() == str(value)
    ).first()


def update_contact_metadata(db: Session, contact: Contact, **values) -> Contact:
    # Reassign so the JSON column is flagged dirty
    metadata = dict(contact.metadata_ or {})
    metadata.update({k: v for k, v in values.items() if v is not None})
    contact.metadata_ = metadata
    db.commit()
    db.refresh(contact)
    return contact
