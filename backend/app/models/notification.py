"""
models/notification.py — Outbox of membership events.

notification_service.dispatch() appends one row per event after the
triggering transaction has committed. Delivery (email, push, websocket) is
handled elsewhere and reads from this table.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(db.Model):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Plain integers, not FKs: the outbox must survive group deletion.
    group_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Notification id={self.id} event_type={self.event_type!r} group_id={self.group_id}>"
