from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import DocumentMixin


ROLE_USER = "user"
ROLE_ADMIN = "admin"
VALID_ROLES = {ROLE_USER, ROLE_ADMIN}


class User(DocumentMixin, db.Model):
    """
    Customer and admin accounts.

    The document includes password_hash; it must be stripped before leaving
    the service layer (users_service.public_user).
    """
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)

    notifications_read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=True)

    @classmethod
    def canonicalize(cls, record: dict) -> dict:
        record = dict(record)
        if record.get("email"):
            record["email"] = record["email"].strip().lower()
        if "role" in record and record["role"] not in VALID_ROLES:
            record["role"] = ROLE_USER
        return record

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "password_hash": self.password_hash,
            "role": self.role or ROLE_USER,
            "notifications_read_at": to_utc_z(self.notifications_read_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
