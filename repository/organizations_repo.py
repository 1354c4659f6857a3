from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_

from repository.contacts_repo import unlink_contacts
from shared.db import Contact, Organization, Task


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def organization_to_dict(org: Organization, *, contact_count: Optional[int] = None) -> dict:
    data = {
        "id": org.id,
        "name": org.name,
        "priority": org.priority,
        "segment": org.segment,
        "type": org.type,
        "address": org.address,
        "city": org.city,
        "state": org.state,
        "zipCode": org.zip_code,
        "phone": org.phone,
        "email": org.email,
        "website": org.website,
        "notes": org.notes,
        "estimatedRevenue": org.estimated_revenue,
        "employeeCount": org.employee_count,
        "lastContactDate": _format_dt(org.last_contact_date),
        "nextFollowUpDate": _format_dt(org.next_follow_up_date),
        "status": org.status,
        "createdAt": _format_dt(org.created_at),
        "updatedAt": _format_dt(org.updated_at),
    }
    if contact_count is not None:
        data["contactCount"] = contact_count
    return data


def list_organizations(
    db,
    *,
    query: Optional[str] = None,
    priority: Optional[str] = None,
    segment: Optional[str] = None,
    status: Optional[str] = "ACTIVE",
    limit: int = 50,
) -> List[Organization]:
    q = db.query(Organization)
    if status:
        q = q.filter(Organization.status == status)
    if priority:
        q = q.filter(Organization.priority == priority)
    if segment:
        q = q.filter(Organization.segment == segment)
    if query:
        pattern = f"%{query.lower()}%"
        q = q.filter(
            or_(
                func.lower(Organization.name).like(pattern),
                func.lower(Organization.email).like(pattern),
            )
        )
    return q.order_by(Organization.priority.asc(), Organization.name.asc()).limit(limit).all()


def get_organization(db, org_id: str) -> Optional[Organization]:
    if not org_id:
        return None
    return db.query(Organization).filter_by(id=org_id).one_or_none()


def count_contacts(db, org_id: str) -> int:
    return db.query(func.count(Contact.id)).filter(Contact.organization_id == org_id).scalar() or 0


def create_organization(db, values: Dict[str, Any]) -> Organization:
    org = Organization(**values)
    db.add(org)
    db.flush()
    return org


def update_organization(db, org: Organization, values: Dict[str, Any]) -> Organization:
    for column, value in values.items():
        setattr(org, column, value)
    org.updated_at = datetime.utcnow()
    db.flush()
    return org


def delete_organization(db, org: Organization) -> None:
    """Delete an organization with its contacts, interactions and opportunities.

    Tasks survive but lose their links to the organization and its contacts.
    """
    contact_ids = [row[0] for row in db.query(Contact.id).filter(Contact.organization_id == org.id).all()]
    db.query(Task).filter(Task.organization_id == org.id).update(
        {Task.organization_id: None}, synchronize_session=False
    )
    unlink_contacts(db, contact_ids)
    db.delete(org)
    db.flush()


def touch_last_contact(db, org_ids, when: Optional[datetime] = None) -> None:
    stamp = when or datetime.utcnow()
    for org_id in set(org_ids):
        org = get_organization(db, org_id)
        if org and (org.last_contact_date is None or org.last_contact_date < stamp):
            org.last_contact_date = stamp
    db.flush()
