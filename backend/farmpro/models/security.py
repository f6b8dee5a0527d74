from __future__ import annotations

from ..extensions import db
from farmpro.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log with farm context.

    WHY: Track access denials, permission changes and membership changes.
    Critical for detecting escalation attempts.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_farm_occurred", "farm_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    farm_id = db.Column(db.Integer, nullable=True, index=True)  # Not a FK: denials may name unknown farms
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Nullable for anonymous

    # Event classification
    event_type = db.Column(db.String(64), nullable=False, index=True)  # ACCESS_DENIED, PERMISSION_SET, MEMBER_REMOVED, ...
    resource = db.Column(db.String(255), nullable=True)  # e.g., "/api/inventory/3/withdrawal"
    action = db.Column(db.String(128), nullable=True)    # e.g., "inventory:edit"

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("security_events", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "farm_id": self.farm_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
