from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import to_utc_z
from .types import enum_type


class AccessLevel(str, enum.Enum):
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ACCESS_RANK[self]


_ACCESS_RANK = {
    AccessLevel.READ_ONLY: 1,
    AccessLevel.READ_WRITE: 2,
    AccessLevel.ADMIN: 3,
}


class User(db.Model):
    """
    Local mirror of the identity provider's users.

    Authentication happens upstream; this table exists so every mutation
    can be attributed and audit rows can be rendered with a display name.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.username

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class UserModuleAccess(db.Model):
    """Per-module access level granted by the identity provider (sales, operations, ...)."""
    __tablename__ = "user_module_access"
    __table_args__ = (
        db.UniqueConstraint("user_id", "module_name", name="uq_user_module_access"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    module_name = db.Column(db.String(64), nullable=False)
    access_level = db.Column(enum_type(AccessLevel, length=16), nullable=False)

    user = db.relationship("User", backref=db.backref("module_access", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "module_name": self.module_name,
            "access_level": self.access_level.value,
        }
