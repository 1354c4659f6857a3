from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from shared.db import User


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "isActive": bool(user.is_active),
        "lastLoginAt": user.last_login_at.isoformat() if user.last_login_at else None,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def get_user(db, user_id: str) -> Optional[User]:
    return db.query(User).filter_by(id=user_id).one_or_none()


def list_users(db, *, include_inactive: bool = True) -> List[User]:
    query = db.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.created_at.asc(), User.email.asc()).all()


def create_user(db, *, email: str, name: str, password_hash: str, activate_members: bool = False) -> User:
    """Insert a user.

    The first account becomes an active admin. Later accounts are members and
    stay inactive until an admin enables them, unless ``activate_members``.
    """
    first_user = db.query(User.id).first() is None
    user = User(
        email=email,
        name=name,
        password_hash=password_hash,
        role="admin" if first_user else "user",
        is_active=first_user or activate_members,
    )
    db.add(user)
    db.flush()
    return user


def update_user(db, user: User, values: Dict[str, Any]) -> User:
    for column, value in values.items():
        setattr(user, column, value)
    user.updated_at = datetime.utcnow()
    db.flush()
    return user
