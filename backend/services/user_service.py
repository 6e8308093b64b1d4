"""
User Service - back-office accounts and password resets

Guards:
- emails are unique (case-insensitive, stored lowercased)
- the store always keeps at least one active admin: the last one cannot be
  demoted, deactivated or deleted
- an admin cannot lock themselves out (demote, deactivate or delete self)
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import func, or_

from constants import PASSWORD_RESET_TTL_MINUTES
from models.database import db, utcnow
from models.password_reset import PasswordResetToken, hash_reset_token
from models.user import User
from schemas.admin import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserNotFound(Exception):
    pass


class UserConflict(Exception):
    """Duplicate email or a change that would leave the store without an admin."""


class InvalidResetToken(Exception):
    pass


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    return user


def list_users(search: Optional[str] = None, page: int = 1, limit: int = 20):
    query = User.query
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(User.email).like(pattern),
            func.lower(func.coalesce(User.name, '')).like(pattern),
        ))
    total = query.count()
    users = (
        query.order_by(User.name.asc(), User.email.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total


def _email_taken(email: str, exclude_id: Optional[int] = None) -> bool:
    query = User.query.filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def _other_active_admins(user: User) -> int:
    return User.query.filter(
        User.role == 'admin',
        User.is_active.is_(True),
        User.id != user.id,
    ).count()


def create_user(payload: UserCreate) -> User:
    email = payload.email.lower()
    if _email_taken(email):
        raise UserConflict(f"Email {email} is already registered")

    user = User(email=email, name=payload.name, role=payload.role, is_active=payload.is_active)
    user.set_password(payload.password)
    db.session.add(user)
    db.session.commit()
    logger.info(f"User {user.id} ({email}) created with role {user.role}")
    return user


def update_user(user: User, payload: UserUpdate, acting_user: Optional[User] = None) -> User:
    changes = payload.model_dump(exclude_unset=True)

    demoted = changes.get('role') == 'viewer' or changes.get('is_active') is False
    if demoted and user.is_admin:
        if acting_user is not None and acting_user.id == user.id:
            raise UserConflict("You cannot remove your own admin access")
        if _other_active_admins(user) == 0:
            raise UserConflict("The store must keep at least one active admin")

    if changes.get('email'):
        email = changes['email'].lower()
        if _email_taken(email, exclude_id=user.id):
            raise UserConflict(f"Email {email} is already registered")
        user.email = email
    if 'name' in changes:
        user.name = changes['name']
    if changes.get('role'):
        user.role = changes['role']
    if changes.get('is_active') is not None:
        user.is_active = changes['is_active']
    if changes.get('password'):
        user.set_password(changes['password'])

    db.session.commit()
    # Field names only; values (passwords) stay out of the log
    logger.info(f"User {user.id} updated: {sorted(changes)}")
    return user


def delete_user(user: User, acting_user: Optional[User] = None) -> None:
    if acting_user is not None and acting_user.id == user.id:
        raise UserConflict("You cannot delete your own account")
    if user.is_admin and _other_active_admins(user) == 0:
        raise UserConflict("The store must keep at least one active admin")

    user_id, email = user.id, user.email
    db.session.delete(user)
    db.session.commit()
    logger.info(f"User {user_id} ({email}) deleted")


# =============================================================================
# Password reset
# =============================================================================

def create_password_reset(email: str) -> Optional[Tuple[User, str]]:
    """
    Issue a reset token for an active admin.

    Returns:
        (user, raw token), or None when no active admin has that email (callers
        answer the same either way so the response never reveals which
        emails have accounts)
    """
    user = User.query.filter_by(email=email.lower()).first()
    if user is None or not user.is_admin:
        logger.info("Password reset requested for an unknown or non-admin email")
        return None

    token = secrets.token_urlsafe(32)
    db.session.add(PasswordResetToken(
        user_id=user.id,
        token_hash=hash_reset_token(token),
        expires_at=utcnow() + timedelta(minutes=PASSWORD_RESET_TTL_MINUTES),
    ))
    db.session.commit()
    logger.info(f"Password reset token issued for user {user.id}")
    return user, token


def reset_password(token: str, new_password: str) -> User:
    """
    Raises:
        InvalidResetToken: unknown, expired or already used token
    """
    reset = PasswordResetToken.find_by_token(token)
    if reset is None or not reset.is_usable:
        raise InvalidResetToken("Invalid or expired reset link")

    user = reset.user
    user.set_password(new_password)
    now = utcnow()
    # Every outstanding link for the user dies with this one
    for other in user.reset_tokens:
        if other.used_at is None:
            other.used_at = now
    db.session.commit()
    logger.info(f"Password reset completed for user {user.id}")
    return user
