# focusguard/models/users.py

from sqlalchemy import Column, Integer, String, DateTime, JSON, func
from sqlalchemy.ext.mutable import MutableDict

from focusguard.database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(50), nullable=True)

    # Lifetime totals (seconds), accumulated with every ingest call
    total_focus_time = Column(Integer, nullable=False, default=0)
    total_distraction_time = Column(Integer, nullable=False, default=0)
    app_usage = Column(MutableDict.as_mutable(JSON), nullable=False, default=dict)

    created_at = Column(DateTime, server_default=func.now())
