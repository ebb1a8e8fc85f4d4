# focusguard/models/sessions.py

import uuid

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, JSON, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.ext.mutable import MutableDict

from focusguard.database import Base
from focusguard.utils.constants import (
    INITIALIZING_SERVICE,
    ANALYZING_PRODUCTIVITY,
    WAITING_REASON,
)


def new_session_id() -> str:
    return uuid.uuid4().hex


class FocusSession(Base):
    __tablename__ = "sessions"

    session_id = Column(String(32), primary_key=True, default=new_session_id)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)

    # start_time: placeholder at creation, re-stamped once on activation
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)

    focus_time = Column(Integer, nullable=False, default=0)
    distraction_time = Column(Integer, nullable=False, default=0)
    app_usage = Column(MutableDict.as_mutable(JSON), nullable=False, default=dict)

    # latestActivity snapshot (overwritten by every ingest call)
    latest_service = Column(String(255), nullable=False, default=INITIALIZING_SERVICE)
    latest_productivity = Column(String(50), nullable=False, default=ANALYZING_PRODUCTIVITY)
    latest_reason = Column(Text, nullable=False, default=WAITING_REASON)
    latest_timestamp = Column(DateTime, nullable=True)

    # True while open, NULL once closed. NULLs never collide in a unique
    # constraint, so (user_id, is_open) allows one open row per user.
    is_open = Column(Boolean, nullable=True, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "is_open", name="uix_sessions_user_open"),
    )

    @property
    def latest_activity(self) -> dict:
        return {
            "service": self.latest_service,
            "productivity": self.latest_productivity,
            "reason": self.latest_reason,
            "timestamp": self.latest_timestamp or self.start_time,
        }

    def close(self, at):
        self.end_time = at
        self.is_open = None
