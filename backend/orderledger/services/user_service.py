# Overview: Service-layer operations for the local identity mirror (users and module access).

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationError
from ..models import AccessLevel, User, UserModuleAccess
from ..validation import optional_text, parse_enum, require_text
from .concurrency import run_in_transaction


def create_user(*, username: str, full_name: str | None = None, email: str | None = None) -> User:
    name = require_text(username, "username", max_length=64)

    def _op() -> User:
        if db.session.query(User.id).filter_by(username=name).first() is not None:
            raise ValidationError(f"Username '{name}' already exists", details={"username": name})
        user = User(
            username=name,
            full_name=optional_text(full_name, "full_name"),
            email=optional_text(email, "email"),
            is_active=True,
        )
        db.session.add(user)
        db.session.flush()
        return user

    return run_in_transaction(_op)


def grant_module_access(*, user_id: int, module_name: str, access_level: AccessLevel | str) -> UserModuleAccess:
    """Create or replace a user's access level on one module."""
    module = require_text(module_name, "module_name", max_length=64)
    level = parse_enum(AccessLevel, access_level, "access_level")

    def _op() -> UserModuleAccess:
        if db.session.get(User, user_id) is None:
            raise ValidationError(f"User {user_id} not found", details={"user_id": user_id})
        access = db.session.query(UserModuleAccess).filter_by(user_id=user_id, module_name=module).first()
        if access is None:
            access = UserModuleAccess(user_id=user_id, module_name=module, access_level=level)
            db.session.add(access)
        else:
            access.access_level = level
        db.session.flush()
        return access

    return run_in_transaction(_op)
