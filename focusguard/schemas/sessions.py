from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class LatestActivity(CamelModel):
    service: str
    productivity: str
    reason: str
    timestamp: datetime


class SessionResponse(CamelModel):
    id: str = Field(validation_alias="session_id")
    user_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    focus_time: int
    distraction_time: int
    app_usage: Dict[str, int]
    latest_activity: LatestActivity
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionActionResponse(BaseModel):
    message: str
    session: SessionResponse


class SessionDataInput(BaseModel):
    # Payload posted by the local engine every interval
    focus: StrictBool
    app_name: str = Field(alias="appName", min_length=1)
    activity: str


class MessageResponse(BaseModel):
    message: str


class DailyStat(CamelModel):
    date: str  # "YYYY-MM-DD" (UTC)
    focus_time: int
    distraction_time: int
    session_count: int
    focus_percentage: int


class AppUsageStat(CamelModel):
    app_name: str
    total_time: int


class UserStatsResponse(CamelModel):
    total_focus_time: int
    total_distraction_time: int
    app_usage: Dict[str, int]
