from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from shared.db import Contact, Interaction, Organization


def interaction_to_dict(interaction: Interaction) -> dict:
    contact = interaction.contact
    return {
        "id": interaction.id,
        "type": interaction.type,
        "subject": interaction.subject,
        "description": interaction.description,
        "date": interaction.date.isoformat() if interaction.date else None,
        "duration": interaction.duration,
        "outcome": interaction.outcome,
        "nextAction": interaction.next_action,
        "organizationId": interaction.organization_id,
        "contactId": interaction.contact_id,
        "contactName": f"{contact.first_name} {contact.last_name}" if contact else None,
        "userId": interaction.user_id,
        "createdAt": interaction.created_at.isoformat() if interaction.created_at else None,
    }


def list_interactions(
    db,
    *,
    organization_id: str,
    contact_id: Optional[str] = None,
    interaction_type: Optional[str] = None,
    limit: int = 50,
) -> List[Interaction]:
    q = db.query(Interaction).filter(Interaction.organization_id == organization_id)
    if contact_id:
        q = q.filter(Interaction.contact_id == contact_id)
    if interaction_type:
        q = q.filter(Interaction.type == interaction_type)
    return q.order_by(Interaction.date.desc()).limit(limit).all()


def find_missing_references(db, items: Iterable[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Return organization and contact ids referenced by ``items`` that do not exist."""
    org_ids: Set[str] = {item["organization_id"] for item in items}
    contact_ids: Set[str] = {item["contact_id"] for item in items if item.get("contact_id")}
    found_orgs = {row[0] for row in db.query(Organization.id).filter(Organization.id.in_(sorted(org_ids))).all()}
    found_contacts: Set[str] = set()
    if contact_ids:
        found_contacts = {row[0] for row in db.query(Contact.id).filter(Contact.id.in_(sorted(contact_ids))).all()}
    missing: Dict[str, List[str]] = {}
    if org_ids - found_orgs:
        missing["organizationIds"] = sorted(org_ids - found_orgs)
    if contact_ids - found_contacts:
        missing["contactIds"] = sorted(contact_ids - found_contacts)
    return missing


def _duplicate_key(values: Dict[str, Any]) -> Tuple:
    return (
        values["organization_id"],
        values.get("contact_id"),
        values["type"],
        values["subject"],
        values["date"],
    )


def _existing_keys(db, items: List[Dict[str, Any]]) -> Set[Tuple]:
    org_ids = {item["organization_id"] for item in items}
    rows = db.query(Interaction).filter(Interaction.organization_id.in_(sorted(org_ids))).all()
    return {
        (row.organization_id, row.contact_id, row.type, row.subject, row.date)
        for row in rows
    }


def create_interactions(
    db,
    items: List[Dict[str, Any]],
    *,
    user_id: Optional[str],
    skip_duplicates: bool = False,
) -> Tuple[List[Interaction], int]:
    """Insert ``items`` and return the created rows plus how many were skipped as duplicates."""
    seen = _existing_keys(db, items) if skip_duplicates else set()
    created: List[Interaction] = []
    skipped = 0
    for values in items:
        key = _duplicate_key(values)
        if skip_duplicates and key in seen:
            skipped += 1
            continue
        seen.add(key)
        interaction = Interaction(user_id=user_id, **values)
        db.add(interaction)
        created.append(interaction)
    db.flush()
    return created, skipped
