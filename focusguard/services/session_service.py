# focusguard/services/session_service.py

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from focusguard.models.sessions import FocusSession
from focusguard.models.users import User
from focusguard.utils.app_names import sanitize_app_name, restore_app_name
from focusguard.utils.constants import (
    ANALYSIS_INTERVAL_SECONDS,
    INITIALIZING_SERVICE,
    ANALYZING_PRODUCTIVITY,
    WAITING_FIRST_POINT_REASON,
    PRODUCTIVE,
    UNPRODUCTIVE,
)
from focusguard.utils.dates import utcnow
from focusguard.utils.exceptions import (
    SessionNotFound,
    InvalidPayload,
    SessionStoreError,
)

logger = logging.getLogger(__name__)

# A start that loses a race against a concurrent start re-runs the self-heal
START_ATTEMPTS = 2


class SessionService:
    """Session lifecycle: placeholder -> active -> closed.

    One open session (end_time IS NULL) per user. `start_session` closes any
    session left open before creating the new placeholder, because the
    activation request can be lost (crash, connectivity) and would otherwise
    block every later start.
    """

    @staticmethod
    def _open_session_query(db: Session, user_id: int):
        return db.query(FocusSession).filter(
            FocusSession.user_id == user_id,
            FocusSession.end_time.is_(None),
        )

    @staticmethod
    def _get_open_owned(db: Session, session_id: str, user_id: int, message: str) -> FocusSession:
        session = SessionService._open_session_query(db, user_id).filter(
            FocusSession.session_id == session_id
        ).first()

        if not session:
            raise SessionNotFound(message)
        return session

    # 1) 세션 시작 (placeholder 생성 + self-heal)
    @staticmethod
    def start_session(db: Session, user_id: int) -> FocusSession:
        for attempt in range(1, START_ATTEMPTS + 1):
            now = utcnow()

            try:
                stale_sessions = SessionService._open_session_query(db, user_id).all()
                for stale in stale_sessions:
                    stale.close(now)
                    logger.warning(
                        f"[start_session] Found and automatically terminated a stale session: {stale.session_id}"
                    )
                db.flush()

                new_session = FocusSession(
                    user_id=user_id,
                    start_time=now,
                    focus_time=0,
                    distraction_time=0,
                    app_usage={},
                )
                db.add(new_session)
                db.commit()
            except IntegrityError:
                # Another start for the same user committed first
                db.rollback()
                logger.warning(
                    f"[start_session] Concurrent start for user {user_id} (attempt {attempt}/{START_ATTEMPTS})"
                )
                continue
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"[start_session] Error starting session for user {user_id}: {e}")
                raise SessionStoreError("Internal server error while starting session.")

            db.refresh(new_session)
            logger.info(f"[start_session] Created session {new_session.session_id} for user {user_id}")
            return new_session

        raise SessionStoreError("Could not start session: concurrent start in progress")

    # 2) 엔진 준비 완료 → 공식 시작 시간 기록
    @staticmethod
    def activate_session(db: Session, session_id: str, user_id: int) -> FocusSession:
        session = SessionService._get_open_owned(
            db, session_id, user_id, "Session to activate not found or already ended."
        )

        session.start_time = utcnow()
        db.commit()
        db.refresh(session)

        logger.info(f"[activate_session] Session {session_id} is now active")
        return session

    # 3) 엔진 데이터 수신 (interval 단위 누적)
    @staticmethod
    def record_session_data(
        db: Session,
        session_id: str,
        user_id: int,
        focus,
        app_name,
        activity,
    ) -> FocusSession:
        if not isinstance(focus, bool) or not app_name or activity is None:
            raise InvalidPayload("Invalid analysis data payload.")

        session = SessionService._get_open_owned(
            db, session_id, user_id, "Active session not found. Please stop monitoring."
        )

        user = db.query(User).filter(User.user_id == user_id).first()
        if not user:
            raise SessionNotFound("User associated with session not found.")

        increment = ANALYSIS_INTERVAL_SECONDS
        app_key = sanitize_app_name(app_name)

        if focus:
            session.focus_time += increment
            user.total_focus_time += increment
        else:
            session.distraction_time += increment
            user.total_distraction_time += increment

        session.app_usage[app_key] = session.app_usage.get(app_key, 0) + increment
        user.app_usage[app_key] = user.app_usage.get(app_key, 0) + increment

        # Raw app name for display, not the sanitized key
        session.latest_service = app_name
        session.latest_productivity = PRODUCTIVE if focus else UNPRODUCTIVE
        session.latest_reason = activity
        session.latest_timestamp = utcnow()

        # Session and lifetime totals are committed together
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error processing data for session {session_id}: {e}")
            raise SessionStoreError("Internal server error while processing data.")

        logger.debug(f"[Session {session_id}] focus={focus}, app={app_key}")
        return session

    # 4) 세션 종료
    @staticmethod
    def stop_session(db: Session, session_id: str, user_id: int) -> FocusSession:
        session = SessionService._get_open_owned(
            db, session_id, user_id, "Active session not found or already stopped"
        )

        session.close(utcnow())
        db.commit()
        db.refresh(session)

        logger.info(f"[stop_session] Session {session_id} stopped")
        return session

    @staticmethod
    def get_current_session(db: Session, user_id: int) -> FocusSession:
        session = SessionService._open_session_query(db, user_id).first()
        if not session:
            raise SessionNotFound("No active session found")
        return session

    @staticmethod
    def get_live_status(db: Session, user_id: int) -> dict:
        session = SessionService.get_current_session(db, user_id)

        if session.latest_service and session.latest_service != INITIALIZING_SERVICE:
            return session.latest_activity

        # No data point yet: answer with a placeholder instead of an error
        return {
            "service": INITIALIZING_SERVICE,
            "productivity": ANALYZING_PRODUCTIVITY,
            "reason": WAITING_FIRST_POINT_REASON,
            "timestamp": utcnow(),
        }

    @staticmethod
    def get_session(db: Session, session_id: str, user_id: int) -> FocusSession:
        session = db.query(FocusSession).filter(
            FocusSession.session_id == session_id,
            FocusSession.user_id == user_id,
        ).first()

        if not session:
            raise SessionNotFound("Session not found or access denied")
        return session

    @staticmethod
    def get_session_history(db: Session, user_id: int):
        return (
            db.query(FocusSession)
            .filter(FocusSession.user_id == user_id)
            .order_by(FocusSession.start_time.desc())
            .all()
        )

    @staticmethod
    def get_user_stats(user: User) -> dict:
        app_usage = {}
        for key, seconds in (user.app_usage or {}).items():
            name = restore_app_name(key)
            app_usage[name] = app_usage.get(name, 0) + seconds

        return {
            "total_focus_time": user.total_focus_time,
            "total_distraction_time": user.total_distraction_time,
            "app_usage": app_usage,
        }
