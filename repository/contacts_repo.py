from __future__ import annotations

from datetime import datetime
import re
from typing import Any, Dict, List, Optional

from shared.db import Contact, Interaction, Opportunity, Task


def _normalize_phone(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = re.sub(r"[^\d+]", "", str(value))
    return cleaned or None


def contact_to_dict(contact: Contact) -> dict:
    return {
        "id": contact.id,
        "organizationId": contact.organization_id,
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "position": contact.position,
        "isPrimary": bool(contact.is_primary),
        "notes": contact.notes,
        "createdAt": contact.created_at.isoformat() if contact.created_at else None,
        "updatedAt": contact.updated_at.isoformat() if contact.updated_at else None,
    }


def list_contacts_for_organization(db, org_id: str, *, limit: int = 50) -> List[Contact]:
    return (
        db.query(Contact)
        .filter(Contact.organization_id == org_id)
        .order_by(Contact.first_name.asc(), Contact.last_name.asc())
        .limit(limit)
        .all()
    )


def get_contact(db, contact_id: str) -> Optional[Contact]:
    if not contact_id:
        return None
    return db.query(Contact).filter_by(id=contact_id).one_or_none()


def _clear_other_primaries(db, contact: Contact) -> None:
    (
        db.query(Contact)
        .filter(Contact.organization_id == contact.organization_id, Contact.id != contact.id)
        .update({Contact.is_primary: False}, synchronize_session=False)
    )


def create_contact(db, values: Dict[str, Any]) -> Contact:
    values = dict(values)
    values["phone"] = _normalize_phone(values.get("phone"))
    contact = Contact(**values)
    db.add(contact)
    db.flush()
    if contact.is_primary:
        _clear_other_primaries(db, contact)
    return contact


def update_contact(db, contact: Contact, values: Dict[str, Any]) -> Contact:
    for column, value in values.items():
        if column == "phone":
            value = _normalize_phone(value)
        setattr(contact, column, value)
    contact.updated_at = datetime.utcnow()
    db.flush()
    if contact.is_primary:
        _clear_other_primaries(db, contact)
    return contact


def unlink_contacts(db, contact_ids: List[str]) -> None:
    """Null out references to contacts about to be deleted."""
    if not contact_ids:
        return
    for model in (Interaction, Opportunity, Task):
        db.query(model).filter(model.contact_id.in_(contact_ids)).update(
            {model.contact_id: None}, synchronize_session=False
        )


def delete_contact(db, contact: Contact) -> None:
    unlink_contacts(db, [contact.id])
    db.delete(contact)
    db.flush()
