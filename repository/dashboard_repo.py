from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict

from sqlalchemy import func

from shared.db import Interaction, Opportunity, Organization, Task


def dashboard_summary(db, *, now: datetime | None = None) -> Dict[str, Any]:
    """Aggregate counts shown on the CRM landing page."""
    current = now or datetime.utcnow()
    priority_rows = (
        db.query(Organization.priority, func.count(Organization.id))
        .filter(Organization.status == "ACTIVE")
        .group_by(Organization.priority)
        .all()
    )
    stage_rows = (
        db.query(Opportunity.stage, func.count(Opportunity.id), func.coalesce(func.sum(Opportunity.value), 0))
        .filter(Opportunity.is_active.is_(True))
        .group_by(Opportunity.stage)
        .all()
    )
    open_tasks = db.query(func.count(Task.id)).filter(Task.status != "completed").scalar() or 0
    recent_interactions = (
        db.query(func.count(Interaction.id))
        .filter(Interaction.date >= current - timedelta(days=30))
        .scalar()
        or 0
    )
    by_priority = {priority: 0 for priority in ("A", "B", "C", "D")}
    by_priority.update({priority: count for priority, count in priority_rows})
    pipeline = {
        stage: {"count": count, "value": float(total or 0)}
        for stage, count, total in stage_rows
    }
    return {
        "organizationsByPriority": by_priority,
        "totalOrganizations": sum(by_priority.values()),
        "pipeline": pipeline,
        "openPipelineValue": sum(
            entry["value"] for stage, entry in pipeline.items() if stage not in {"CLOSED_WON", "CLOSED_LOST"}
        ),
        "openTasks": open_tasks,
        "interactionsLast30Days": recent_interactions,
        "generatedAt": current.isoformat(),
    }
