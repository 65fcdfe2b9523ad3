from __future__ import annotations

from ..extensions import db
from cartonstock.time_utils import to_utc_z


class Notification(db.Model):
    """
    In-app notification fanned out to one or more roles.

    target_roles holds role names ("admin", "store_staff", "customer");
    target_user_id, when set, narrows the audience to that one user.
    read_by collects the user ids that dismissed it.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)

    target_roles = db.Column(db.JSON, nullable=False, default=list)
    target_user_id = db.Column(db.String(128), nullable=True, index=True)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    read_by = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "target_roles": list(self.target_roles or []),
            "target_user_id": self.target_user_id,
            "reference_id": self.reference_id,
            "read_by": list(self.read_by or []),
            "created_at": to_utc_z(self.created_at),
        }
