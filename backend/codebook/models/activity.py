from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import DocumentMixin


class ActivityLogEntry(DocumentMixin, db.Model):
    """
    Append-only record of privileged mutations.

    Rows are inserted by audit_service and never updated or deleted.
    """
    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("ix_activity_log_entity", "entity_type", "entity_id"),
        db.Index("ix_activity_log_created_at", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    actor_user_id = db.Column(db.String(64), nullable=True)
    actor_email = db.Column(db.String(255), nullable=True)
    actor_name = db.Column(db.String(255), nullable=True)

    action = db.Column(db.String(32), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "actor_user_id": self.actor_user_id,
            "actor_email": self.actor_email,
            "actor_name": self.actor_name,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details or {},
        }
