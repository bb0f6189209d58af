# Overview: Back-office users (administrators and sellers).

"""
User service

Identity is handled upstream; the API receives the acting user's id in
the X-User-Id header. This module only keeps the user directory and the
role each user has.
"""

import re

from ..extensions import db
from ..models import User
from ..models.users import ROLE_ADMIN, ROLE_SELLER, ROLES
from ..validation import ConflictError, NotFoundError, ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserError(ValidationError):
    pass


def _normalize_email(email) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise UserError("A valid email is required")
    return email


def create_user(email: str, full_name: str, role: str = ROLE_SELLER) -> User:
    """
    Create a user.

    Raises:
        UserError: invalid email, name or role
        ConflictError: email already registered
    """
    email = _normalize_email(email)
    if not full_name or not full_name.strip():
        raise UserError("full_name is required")
    if role not in ROLES:
        raise UserError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User.id).filter(User.email == email).first():
        raise ConflictError("A user with this email already exists.", details={"email": email})

    user = User(email=email, full_name=full_name.strip(), role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(role: str | None = None, include_inactive: bool = True) -> list[User]:
    q = db.session.query(User)
    if role:
        q = q.filter(User.role == role)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.full_name.asc(), User.id.asc()).all()


def list_sellers() -> list[User]:
    """Active users who can be assigned sales (sellers and admins)."""
    return list_users(include_inactive=False)


def update_user(user_id: int, *, role: str | None = None, is_active: bool | None = None,
                full_name: str | None = None) -> User:
    user = get_user(user_id)

    if role is not None:
        if role not in ROLES:
            raise UserError(f"role must be one of: {', '.join(ROLES)}")
        if user.role == ROLE_ADMIN and role != ROLE_ADMIN:
            _ensure_another_admin(user)
        user.role = role

    if is_active is not None:
        if not is_active and user.is_admin:
            _ensure_another_admin(user)
        user.is_active = bool(is_active)

    if full_name is not None:
        if not full_name.strip():
            raise UserError("full_name cannot be blank")
        user.full_name = full_name.strip()

    db.session.commit()
    return user


def _ensure_another_admin(user: User) -> None:
    others = (
        db.session.query(User.id)
        .filter(User.role == ROLE_ADMIN, User.is_active.is_(True), User.id != user.id)
        .count()
    )
    if not others:
        raise ConflictError("At least one active administrator is required")
