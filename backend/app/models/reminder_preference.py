"""
models/reminder_preference.py — ReminderPreference table definition.

One row per (user, scope_type, scope_id): how often the user wants to be
reminded about what is owed in a group or with a contact. reminder_service.py
reads and updates `last_sent_at`; nothing else writes to it.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class ReminderScope(str, enum.Enum):
    GROUP   = "group"
    CONTACT = "contact"


class ReminderFrequency(str, enum.Enum):
    WEEKLY  = "weekly"
    MONTHLY = "monthly"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ReminderPreference(db.Model):
    __tablename__ = "reminder_preferences"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "scope_type", "scope_id",
            name="uq_reminder_preferences_scope",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    scope_type: Mapped[ReminderScope] = mapped_column(
        Enum(
            ReminderScope,
            name="reminder_scope_enum",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    # groups.id for a group scope, users.id of the contact otherwise.
    scope_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    frequency: Mapped[ReminderFrequency] = mapped_column(
        Enum(
            ReminderFrequency,
            name="reminder_frequency_enum",
            native_enum=False,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=ReminderFrequency.WEEKLY,
    )

    last_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship("User")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ReminderPreference id={self.id} user_id={self.user_id} "
            f"{self.scope_type.value if self.scope_type else None}:{self.scope_id} "
            f"{self.frequency.value if self.frequency else None}>"
        )
