from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from shared.db import Opportunity


def opportunity_to_dict(opportunity: Opportunity) -> dict:
    org = opportunity.organization
    return {
        "id": opportunity.id,
        "name": opportunity.name,
        "value": opportunity.value,
        "stage": opportunity.stage,
        "probability": opportunity.probability,
        "expectedCloseDate": (
            opportunity.expected_close_date.isoformat() if opportunity.expected_close_date else None
        ),
        "notes": opportunity.notes,
        "reason": opportunity.reason,
        "isActive": bool(opportunity.is_active),
        "organizationId": opportunity.organization_id,
        "organizationName": org.name if org else None,
        "contactId": opportunity.contact_id,
        "createdAt": opportunity.created_at.isoformat() if opportunity.created_at else None,
        "updatedAt": opportunity.updated_at.isoformat() if opportunity.updated_at else None,
    }


def list_opportunities(
    db,
    *,
    organization_id: Optional[str] = None,
    stage: Optional[str] = None,
    include_inactive: bool = False,
    limit: int = 50,
) -> List[Opportunity]:
    q = db.query(Opportunity)
    if not include_inactive:
        q = q.filter(Opportunity.is_active.is_(True))
    if organization_id:
        q = q.filter(Opportunity.organization_id == organization_id)
    if stage:
        q = q.filter(Opportunity.stage == stage)
    return q.order_by(Opportunity.updated_at.desc()).limit(limit).all()


def get_opportunity(db, opportunity_id: str) -> Optional[Opportunity]:
    if not opportunity_id:
        return None
    return db.query(Opportunity).filter_by(id=opportunity_id).one_or_none()


def create_opportunity(db, values: Dict[str, Any]) -> Opportunity:
    opportunity = Opportunity(**values)
    db.add(opportunity)
    db.flush()
    return opportunity


def update_opportunity(db, opportunity: Opportunity, values: Dict[str, Any]) -> Opportunity:
    for column, value in values.items():
        setattr(opportunity, column, value)
    opportunity.updated_at = datetime.utcnow()
    db.flush()
    return opportunity


def deactivate_opportunity(db, opportunity: Opportunity) -> Opportunity:
    opportunity.is_active = False
    opportunity.updated_at = datetime.utcnow()
    db.flush()
    return opportunity
