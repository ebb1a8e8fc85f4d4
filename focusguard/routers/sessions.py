from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from focusguard.database import get_db
from focusguard.schemas.sessions import (
    SessionResponse,
    SessionActionResponse,
    SessionDataInput,
    MessageResponse,
    LatestActivity,
    DailyStat,
    AppUsageStat,
    UserStatsResponse,
)
from focusguard.services.session_service import SessionService
from focusguard.services.daily_stats_service import DailyStatsService
from focusguard.utils.constants import DEFAULT_STAT_DAYS
from focusguard.utils.exceptions import (
    SessionNotFound,
    InvalidPayload,
    InvalidDaysRange,
    SessionStoreError,
)
from focusguard.utils.security import get_current_user

router = APIRouter()


def _raise_http(e: Exception):
    if isinstance(e, SessionNotFound):
        raise HTTPException(status_code=404, detail=e.message)
    if isinstance(e, (InvalidPayload, InvalidDaysRange)):
        raise HTTPException(status_code=400, detail=e.message)
    if isinstance(e, SessionStoreError):
        raise HTTPException(status_code=500, detail=e.message)
    raise e


@router.post("/start", response_model=SessionActionResponse, status_code=201)
def start_session(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        session = SessionService.start_session(db, current_user.user_id)
    except SessionStoreError as e:
        _raise_http(e)

    return {"message": "Session started successfully", "session": SessionResponse.model_validate(session)}


@router.patch("/{session_id}/activate", response_model=SessionActionResponse)
def activate_session(
    session_id: str,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        session = SessionService.activate_session(db, session_id, current_user.user_id)
    except SessionNotFound as e:
        _raise_http(e)

    return {"message": "Session activated successfully", "session": SessionResponse.model_validate(session)}


# 로컬 엔진이 interval 마다 호출
@router.post("/data/{session_id}", response_model=MessageResponse)
def process_session_data(
    session_id: str,
    payload: SessionDataInput,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        SessionService.record_session_data(
            db,
            session_id,
            current_user.user_id,
            focus=payload.focus,
            app_name=payload.app_name,
            activity=payload.activity,
        )
    except (SessionNotFound, InvalidPayload, SessionStoreError) as e:
        _raise_http(e)

    return {"message": "Data point processed successfully."}


@router.post("/{session_id}/stop", response_model=SessionActionResponse)
def stop_session(
    session_id: str,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        session = SessionService.stop_session(db, session_id, current_user.user_id)
    except SessionNotFound as e:
        _raise_http(e)

    return {"message": "Session stopped successfully", "session": SessionResponse.model_validate(session)}


@router.get("/current", response_model=SessionResponse)
def get_current_session(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        return SessionService.get_current_session(db, current_user.user_id)
    except SessionNotFound as e:
        _raise_http(e)


@router.get("/live-status", response_model=LatestActivity)
def get_live_status(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        return SessionService.get_live_status(db, current_user.user_id)
    except SessionNotFound as e:
        _raise_http(e)


@router.get("/daily", response_model=List[DailyStat])
def get_daily_analysis(
    days: int = Query(DEFAULT_STAT_DAYS),
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        return DailyStatsService.daily_focus(db, current_user.user_id, days)
    except InvalidDaysRange as e:
        _raise_http(e)


@router.get("/daily/apps", response_model=List[AppUsageStat])
def get_daily_app_usage(
    days: int = Query(DEFAULT_STAT_DAYS),
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        return DailyStatsService.daily_app_usage(db, current_user.user_id, days)
    except InvalidDaysRange as e:
        _raise_http(e)


@router.get("/history", response_model=List[SessionResponse])
def get_session_history(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    return SessionService.get_session_history(db, current_user.user_id)


@router.get("/stats", response_model=UserStatsResponse)
def get_user_stats(current_user = Depends(get_current_user)):
    return SessionService.get_user_stats(current_user)


# 경로 파라미터 라우트는 마지막에 등록 (/current 등과 충돌 방지)
@router.get("/{session_id}", response_model=SessionResponse)
def get_session_by_id(
    session_id: str,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    try:
        return SessionService.get_session(db, session_id, current_user.user_id)
    except SessionNotFound as e:
        _raise_http(e)
