# focusguard/services/daily_stats_service.py

from datetime import datetime
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from focusguard.models.sessions import FocusSession
from focusguard.utils.app_names import restore_app_name
from focusguard.utils.constants import MIN_STAT_DAYS, MAX_STAT_DAYS
from focusguard.utils.dates import window_start, fill_missing_dates
from focusguard.utils.exceptions import InvalidDaysRange


def focus_percentage(focus_time: int, distraction_time: int) -> int:
    total = focus_time + distraction_time
    if total <= 0:
        return 0
    return round(100 * focus_time / total)


class DailyStatsService:

    @staticmethod
    def validate_days(days: int):
        if days < MIN_STAT_DAYS or days > MAX_STAT_DAYS:
            raise InvalidDaysRange("Invalid number of days requested.")

    @staticmethod
    def _window(days: int) -> datetime:
        DailyStatsService.validate_days(days)
        return datetime.combine(window_start(days), datetime.min.time())

    # 1) 일별 집중/방해 시간 (빈 날짜는 0으로 채움)
    @staticmethod
    def daily_focus(db: Session, user_id: int, days: int) -> List[dict]:
        start_dt = DailyStatsService._window(days)

        day = func.date(FocusSession.start_time).label("day")
        rows = (
            db.query(
                day,
                func.sum(FocusSession.focus_time).label("focus_time"),
                func.sum(FocusSession.distraction_time).label("distraction_time"),
                func.count(FocusSession.session_id).label("session_count"),
            )
            .filter(
                FocusSession.user_id == user_id,
                FocusSession.start_time >= start_dt,
            )
            .group_by(day)
            .order_by(day)
            .all()
        )

        stats = []
        for row in rows:
            focus = int(row.focus_time or 0)
            distraction = int(row.distraction_time or 0)
            stats.append({
                # SQLite returns "YYYY-MM-DD", MySQL a date object
                "date": str(row.day),
                "focus_time": focus,
                "distraction_time": distraction,
                "session_count": int(row.session_count),
                "focus_percentage": focus_percentage(focus, distraction),
            })

        return fill_missing_dates(start_dt.date(), days, stats)

    # 2) 앱별 사용 시간 합계 (내림차순, gap-fill 없음)
    @staticmethod
    def daily_app_usage(db: Session, user_id: int, days: int) -> List[dict]:
        start_dt = DailyStatsService._window(days)

        sessions = db.query(FocusSession.app_usage).filter(
            FocusSession.user_id == user_id,
            FocusSession.start_time >= start_dt,
        ).all()

        totals = {}
        for (app_usage,) in sessions:
            for app_key, seconds in (app_usage or {}).items():
                totals[app_key] = totals.get(app_key, 0) + seconds

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [
            {"app_name": restore_app_name(app_key), "total_time": total}
            for app_key, total in ranked
        ]
