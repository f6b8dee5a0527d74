# Overview: Password hashing, credential checks and user creation.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing and
validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit
- Session tokens managed separately (see session_service.py)
- Creating a SUPER_ADMIN requires a SUPER_ADMIN actor
"""

from __future__ import annotations

import re

import bcrypt

from ..errors import ConflictError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import User
from ..permissions import Role


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Validate strength, then bcrypt-hash."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def authenticate(username: str, password: str) -> User | None:
    """Return the active user for these credentials, else None."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def create_user(
    *,
    username: str,
    email: str,
    name: str,
    password: str,
    role: Role = Role.EMPLOYEE,
    actor: User | None = None,
    language: str = "pt",
    password_rounds: int = 12,
) -> User:
    """
    Create a new user.

    actor=None is reserved for bootstrap (CLI); over HTTP the acting admin is
    always passed so the SUPER_ADMIN rule applies.

    Raises:
        PermissionDeniedError: a non-SUPER_ADMIN tries to create a SUPER_ADMIN
        ConflictError: username already taken
        PasswordValidationError: weak password
    """
    if actor is not None and role is Role.SUPER_ADMIN and actor.role is not Role.SUPER_ADMIN:
        raise PermissionDeniedError("Only a super admin can create super admin accounts")

    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError("Username already exists")

    user = User(
        username=username,
        email=email.strip(),
        name=name.strip(),
        password_hash=hash_password(password, rounds=password_rounds),
        role=role,
        language=language,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user
