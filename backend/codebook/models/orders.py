from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import DocumentMixin


class Order(DocumentMixin, db.Model):
    """
    Customer order aggregate.

    The order owns its cart lines (JSON) and a snapshot of the buyer, so it
    stays readable after the referenced products or user change or disappear.
    `status` is only ever changed through order_service under a status guard.
    """
    __tablename__ = "orders"
    __table_args__ = (
        # one order per payment; NULL intents are exempt
        db.UniqueConstraint("user_id", "payment_intent_id", name="uq_orders_user_intent"),
        db.Index("ix_orders_status", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)

    user_id = db.Column(db.String(64), nullable=False, index=True)
    user = db.Column("user_snapshot", db.JSON, nullable=True)
    cart_list = db.Column(db.JSON, nullable=False, default=list)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    shipping_address = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")

    payment_intent_id = db.Column(db.String(255), nullable=True)
    payment_status = db.Column(db.String(32), nullable=True)

    tracking_number = db.Column(db.String(128), nullable=True)
    tracking_carrier = db.Column(db.String(32), nullable=True)
    tracking_url = db.Column(db.String(512), nullable=True)
    label_url = db.Column(db.String(512), nullable=True)

    # Minor units (cents)
    refund_amount = db.Column(db.Integer, nullable=True)
    refund_id = db.Column(db.String(255), nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user,
            "cart_list": list(self.cart_list or []),
            "quantity": self.quantity,
            "amount_paid": float(self.amount_paid) if self.amount_paid is not None else 0.0,
            "shipping_address": self.shipping_address,
            "status": self.status or "pending",
            "payment_intent_id": self.payment_intent_id,
            "payment_status": self.payment_status,
            "tracking_number": self.tracking_number,
            "tracking_carrier": self.tracking_carrier,
            "tracking_url": self.tracking_url,
            "label_url": self.label_url,
            "refund_amount": self.refund_amount,
            "refund_id": self.refund_id,
            "refunded_at": to_utc_z(self.refunded_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
