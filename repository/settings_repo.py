from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from shared.db import SystemSetting


def setting_to_dict(setting: SystemSetting) -> dict:
    return {
        "id": setting.id,
        "key": setting.key,
        "value": setting.value,
        "label": setting.label,
        "category": setting.category,
        "type": setting.type,
        "sortOrder": setting.sort_order,
        "active": bool(setting.active),
        "description": setting.description,
        "updatedAt": setting.updated_at.isoformat() if setting.updated_at else None,
    }


def list_settings(db, *, category: Optional[str] = None) -> List[SystemSetting]:
    q = db.query(SystemSetting).filter(SystemSetting.active.is_(True))
    if category:
        q = q.filter(SystemSetting.category == category)
    return q.order_by(SystemSetting.category.asc(), SystemSetting.sort_order.asc()).all()


def get_setting_by_key(db, key: str) -> Optional[SystemSetting]:
    if not key:
        return None
    return db.query(SystemSetting).filter_by(key=key).one_or_none()


def update_setting(
    db,
    setting: SystemSetting,
    *,
    value: Optional[str] = None,
    label: Optional[str] = None,
    active: Optional[bool] = None,
) -> SystemSetting:
    if value is not None:
        setting.value = value
    if label is not None:
        setting.label = label
    if active is not None:
        setting.active = active
    setting.updated_at = datetime.utcnow()
    db.flush()
    return setting
