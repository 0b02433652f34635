"""
Analytics Service - product analytics for the admin dashboard.

Tracking (page-tracker):
- track_page_view     : raw event, live daily counter, browsing session

Read side (page_analytics, user_session_analytics):
- getDashboardMetrics : totals, bounce rate and change vs previous window
- getPopularPages     : top routes by page views
- getUserBehavior     : top devices, entry pages and exit pages

Write side (processEventLogs):
- aggregates `page_view` events into daily per-route rows
- closes stale browsing sessions
- recomputes bounce rates per entry page
"""
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from tutorapi.core.exceptions import ValidationError
from tutorapi.core.logging_config import LoggerMixin, log_step
from tutorapi.database.models import AppEventLog, PageAnalytics, UserSessionAnalytics
from tutorapi.models.learning import PageViewRequest

PERIOD_DAYS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD_DAYS = 7

STALE_SESSION_HOURS = 4
ASSUMED_SESSION_TAIL_MINUTES = 30
MAX_SESSION_MINUTES = 180
MAX_USER_AGENT_LENGTH = 300


@dataclass(frozen=True)
class DateWindow:
    """Inclusive range of calendar days."""
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_before(self) -> datetime:
        """Exclusive upper bound covering the whole end day."""
        return datetime.combine(self.end + timedelta(days=1), time.min)

    def previous(self) -> "DateWindow":
        """Window of equal length ending the day before this one starts."""
        length = self.end - self.start
        prev_end = self.start - timedelta(days=1)
        return DateWindow(start=prev_end - length, end=prev_end)


def _parse_day(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value}", field=field)


def resolve_window(period: Optional[str], start_date: Optional[str] = None,
                   end_date: Optional[str] = None, today: Optional[date] = None) -> DateWindow:
    """Explicit dates win; otherwise the period counted back from today."""
    if start_date and end_date:
        window = DateWindow(_parse_day(start_date, "startDate"), _parse_day(end_date, "endDate"))
        if window.start > window.end:
            raise ValidationError("startDate must not be after endDate", field="startDate")
        return window

    today = today or datetime.utcnow().date()
    days = PERIOD_DAYS.get(period or "", DEFAULT_PERIOD_DAYS)
    return DateWindow(start=today - timedelta(days=days), end=today)


def _round1(value: float) -> float:
    return round(value * 10) / 10


def _top(counter: Counter, key: str, limit: int = 5) -> List[Dict[str, Any]]:
    return [{key: name, "count": count} for name, count in counter.most_common(limit)]


def _bump(stats: Optional[Dict[str, int]], key: Optional[str]) -> Dict[str, int]:
    counts = dict(stats or {})
    key = key or "unknown"
    counts[key] = counts.get(key, 0) + 1
    return counts


class AnalyticsService(LoggerMixin):
    """Analytics queries and aggregation jobs."""

    def __init__(self, session: Session):
        self.session = session
        self._methods = {
            "getDashboardMetrics": self.dashboard_metrics,
            "getPopularPages": self.popular_pages,
            "getUserBehavior": self.user_behavior,
        }

    def handle(self, method: str, period: Optional[str] = None,
               start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict[str, Any]:
        """Dispatch an /analytics method."""
        if method == "processEventLogs":
            return self.process_event_logs()

        handler = self._methods.get(method)
        if handler is None:
            raise ValidationError("Invalid method", field="method")
        return handler(resolve_window(period, start_date, end_date))

    # ============================================================
    # Read side
    # ============================================================

    def _pages(self, window: DateWindow) -> List[PageAnalytics]:
        return (
            self.session.query(PageAnalytics)
            .filter(PageAnalytics.date >= window.start, PageAnalytics.date <= window.end)
            .all()
        )

    def _sessions(self, window: DateWindow) -> List[UserSessionAnalytics]:
        return (
            self.session.query(UserSessionAnalytics)
            .filter(
                UserSessionAnalytics.started_at >= window.start_at,
                UserSessionAnalytics.started_at < window.end_before,
            )
            .all()
        )

    def dashboard_metrics(self, window: DateWindow) -> Dict[str, Any]:
        pages = self._pages(window)
        sessions = self._sessions(window)

        total_views = sum(p.total_page_views for p in pages)
        unique_views = sum(p.unique_page_views for p in pages)
        total_sessions = len(sessions)
        unique_users = len({s.user_id for s in sessions if s.user_id})

        avg_duration = (
            sum(s.duration_minutes or 0 for s in sessions) / total_sessions if total_sessions else 0
        )
        bounce_rate = (
            sum(1 for s in sessions if s.is_bounce) / total_sessions * 100 if total_sessions else 0
        )

        prev_views = sum(p.total_page_views for p in self._pages(window.previous()))
        if prev_views > 0:
            change = (total_views - prev_views) / prev_views * 100
            page_views_change = f"{'+' if change >= 0 else ''}{change:.1f}%"
        else:
            page_views_change = "0%"

        return {
            "metrics": {
                "totalPageViews": total_views,
                "uniquePageViews": unique_views,
                "totalSessions": total_sessions,
                "uniqueUsers": unique_users,
                "averageSessionDuration": _round1(avg_duration),
                "bounceRate": _round1(bounce_rate),
                "pageViewsChange": page_views_change,
                "pagesPerSession": _round1(total_views / total_sessions) if total_sessions else 0,
            }
        }

    def popular_pages(self, window: DateWindow) -> Dict[str, Any]:
        stats: Dict[str, Dict[str, Any]] = {}
        for row in self._pages(window):
            entry = stats.setdefault(row.route, {
                "route": row.route, "pageViews": 0, "uniqueViews": 0,
                "avgDuration": 0.0, "bounceRate": 0.0, "sessions": 0,
            })
            entry["pageViews"] += row.total_page_views
            entry["uniqueViews"] += row.unique_page_views
            entry["avgDuration"] += row.average_session_duration_minutes or 0
            entry["bounceRate"] += row.bounce_rate or 0
            entry["sessions"] += 1

        popular = []
        for entry in stats.values():
            days = entry["sessions"]
            popular.append({
                **entry,
                "avgDuration": _round1(entry["avgDuration"] / days) if days else 0,
                "bounceRate": _round1(entry["bounceRate"] / days) if days else 0,
            })
        popular.sort(key=lambda e: e["pageViews"], reverse=True)
        return {"popularPages": popular[:10]}

    def user_behavior(self, window: DateWindow) -> Dict[str, Any]:
        sessions = self._sessions(window)
        return {
            "deviceTypes": _top(Counter(s.device_type or "unknown" for s in sessions), "device"),
            "entryPages": _top(Counter(s.entry_page or "unknown" for s in sessions), "page"),
            "exitPages": _top(Counter(s.exit_page or "unknown" for s in sessions), "page"),
        }

    # ============================================================
    # Tracking
    # ============================================================

    def track_page_view(self, view: PageViewRequest, user_id: Optional[str] = None,
                        user_agent: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Record one page view.

        Writes the raw `page_view` event that processEventLogs aggregates,
        bumps today's page_analytics row so the dashboard stays live
        between aggregation runs, and opens or extends the browsing session.

        Args:
            view: Tracking payload posted by the frontend
            user_id: Signed-in visitor, None for anonymous views
            user_agent: Request header, used when the payload has none
            now: Reference time (tests)
        """
        now = now or datetime.utcnow()
        agent = (view.user_agent or user_agent or "")[:MAX_USER_AGENT_LENGTH] or None
        first_visit = user_id is not None and not self._seen_today(user_id, view.route, now)

        self.session.add(AppEventLog(
            user_id=user_id,
            event_type="page_view",
            route=view.route,
            device=view.device,
            platform=view.platform,
            payload={
                "referrer": view.referrer,
                "userAgent": agent,
                "sessionId": view.session_id,
                "loadTime": view.load_time,
                "screenResolution": view.screen_resolution,
                "language": view.language,
                "timezone": view.timezone,
                "timestamp": view.timestamp,
            },
            created_at=now,
        ))
        self._bump_daily_views(view, first_visit, now)
        if view.session_id:
            self._touch_browsing_session(view, user_id, agent, now)
        self.session.flush()

        log_step(self.logger, "PAGE-TRACKER", "Page view tracked",
                 route=view.route, device=view.device, user_id=user_id or "anonymous")
        return {
            "success": True,
            "message": "Page view tracked successfully",
            "route": view.route,
            "timestamp": now.isoformat(),
        }

    def _seen_today(self, user_id: str, route: str, now: datetime) -> bool:
        since = datetime.combine(now.date(), time.min)
        return self.session.query(
            self.session.query(AppEventLog)
            .filter(
                AppEventLog.event_type == "page_view",
                AppEventLog.user_id == user_id,
                AppEventLog.route == route,
                AppEventLog.created_at >= since,
            )
            .exists()
        ).scalar()

    def _bump_daily_views(self, view: PageViewRequest, first_visit: bool, now: datetime) -> None:
        row = self.session.query(PageAnalytics).filter_by(date=now.date(), route=view.route).first()
        if row is None:
            row = PageAnalytics(date=now.date(), route=view.route, total_page_views=0, unique_page_views=0)
            self.session.add(row)

        row.total_page_views = (row.total_page_views or 0) + 1
        if first_visit:
            row.unique_page_views = (row.unique_page_views or 0) + 1
        row.device_stats = _bump(row.device_stats, view.device)
        row.platform_stats = _bump(row.platform_stats, view.platform)
        row.updated_at = now

    def _touch_browsing_session(self, view: PageViewRequest, user_id: Optional[str],
                                agent: Optional[str], now: datetime) -> None:
        browsing = self.session.query(UserSessionAnalytics).filter_by(session_id=view.session_id).first()
        if browsing is None:
            self.session.add(UserSessionAnalytics(
                session_id=view.session_id,
                user_id=user_id,
                started_at=now,
                updated_at=now,
                entry_page=view.route,
                exit_page=view.route,
                pages_visited=1,
                device_type=view.device,
                user_agent=agent,
                referrer=view.referrer,
                is_bounce=False,
                duration_minutes=0,
            ))
            return

        browsing.pages_visited = (browsing.pages_visited or 0) + 1
        browsing.exit_page = view.route
        browsing.updated_at = now
        if browsing.user_id is None:
            browsing.user_id = user_id

    # ============================================================
    # Write side
    # ============================================================

    def process_event_logs(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run the three aggregation jobs in order."""
        now = now or datetime.utcnow()
        routes = self.aggregate_page_views(now)
        closed = self.cleanup_sessions(now)
        bounce_pages = self.calculate_bounce_rates(now)

        log_step(self.logger, "ANALYTICS", "Event logs processed",
                 routes=routes, sessions_closed=closed, bounce_pages=bounce_pages)
        return {
            "success": True,
            "message": "Event logs processed",
            "routesAggregated": routes,
            "sessionsClosed": closed,
            "bounceRatesUpdated": bounce_pages,
        }

    def aggregate_page_views(self, now: datetime) -> int:
        """Upsert daily per-route rows from yesterday's and today's page views."""
        since = datetime.combine(now.date() - timedelta(days=1), time.min)
        events = (
            self.session.query(AppEventLog)
            .filter(AppEventLog.event_type == "page_view", AppEventLog.created_at >= since)
            .all()
        )

        grouped: Dict[tuple, List[AppEventLog]] = defaultdict(list)
        for event in events:
            grouped[(event.created_at.date(), event.route or "/")].append(event)

        for (day, route), route_events in grouped.items():
            load_times = [
                (e.payload or {}).get("loadTime") for e in route_events
            ]
            load_times = [t for t in load_times if isinstance(t, (int, float)) and t > 0]

            values = {
                "total_page_views": len(route_events),
                "unique_page_views": len({e.user_id for e in route_events if e.user_id}),
                "average_load_time_ms": round(sum(load_times) / len(load_times)) if load_times else 0,
                "device_stats": dict(Counter(e.device or "unknown" for e in route_events)),
                "platform_stats": dict(Counter(e.platform or "unknown" for e in route_events)),
                "updated_at": now,
            }

            row = self.session.query(PageAnalytics).filter_by(date=day, route=route).first()
            if row is None:
                row = PageAnalytics(date=day, route=route)
                self.session.add(row)
            for field, value in values.items():
                setattr(row, field, value)

        self.session.flush()
        return len(grouped)

    def cleanup_sessions(self, now: datetime) -> int:
        """Close sessions left open for more than four hours."""
        cutoff = now - timedelta(hours=STALE_SESSION_HOURS)
        stale = (
            self.session.query(UserSessionAnalytics)
            .filter(UserSessionAnalytics.ended_at.is_(None), UserSessionAnalytics.started_at < cutoff)
            .all()
        )

        for browsing in stale:
            ended = (browsing.updated_at or browsing.started_at) + timedelta(minutes=ASSUMED_SESSION_TAIL_MINUTES)
            duration = round((ended - browsing.started_at).total_seconds() / 60)
            browsing.ended_at = ended
            browsing.duration_minutes = max(1, min(duration, MAX_SESSION_MINUTES))
            browsing.is_bounce = browsing.pages_visited <= 1 and duration < 1
            browsing.updated_at = now

        self.session.flush()
        return len(stale)

    def calculate_bounce_rates(self, now: datetime) -> int:
        """Yesterday's bounce rate and average duration per entry page."""
        yesterday = now.date() - timedelta(days=1)
        window = DateWindow(yesterday, yesterday)

        per_page: Dict[str, Dict[str, float]] = defaultdict(lambda: {"total": 0, "bounces": 0, "duration": 0})
        for browsing in self._sessions(window):
            stats = per_page[browsing.entry_page or "/"]
            stats["total"] += 1
            stats["bounces"] += 1 if browsing.is_bounce else 0
            stats["duration"] += browsing.duration_minutes or 0

        updated = 0
        for page, stats in per_page.items():
            row = self.session.query(PageAnalytics).filter_by(date=yesterday, route=page).first()
            if row is None:
                continue
            row.bounce_rate = _round1(stats["bounces"] / stats["total"] * 100)
            row.average_session_duration_minutes = _round1(stats["duration"] / stats["total"])
            updated += 1

        self.session.flush()
        return updated
