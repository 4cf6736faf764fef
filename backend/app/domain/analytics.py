"""
Admin Dashboard Aggregations

Pure functions that turn waitlist rows, auth users and analysis activity
into the shapes the admin dashboard renders. Inputs are duck-typed so
ORM rows, domain objects and test doubles all work.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional


TREND_DAYS = 30
TOP_DOMAINS = 10
RECENT_SIGNUPS = 20


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def start_of_day(now: datetime) -> datetime:
    now = _aware(now)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def email_domain(email: Optional[str]) -> Optional[str]:
    if not email or "@" not in email:
        return None
    return email.rsplit("@", 1)[1].lower() or None


def waitlist_stats(entries: list[Any], now: datetime) -> dict[str, Any]:
    """
    Signup totals, a 30-day daily trend and the top email domains.

    ``entries`` must be ordered newest first; ``recentSignups`` is a
    prefix of it.
    """
    today = start_of_day(now)
    week_ago = today - timedelta(days=7)
    month_ago = today - timedelta(days=30)
    created = [_aware(e.created_at) for e in entries]

    trend_start = today - timedelta(days=TREND_DAYS - 1)
    daily_counts = Counter(c.date() for c in created if c is not None and c >= trend_start)
    trends = []
    for offset in range(TREND_DAYS - 1, -1, -1):
        day = (today - timedelta(days=offset)).date()
        trends.append({"date": day.isoformat(), "signups": daily_counts.get(day, 0)})

    total = len(entries)
    domains = Counter(d for d in (email_domain(e.email) for e in entries) if d)
    breakdown = [
        {
            "domain": domain,
            "count": count,
            "percentage": f"{count / total * 100:.1f}",
        }
        for domain, count in sorted(domains.items(), key=lambda item: (-item[1], item[0]))[:TOP_DOMAINS]
    ]

    return {
        "totalSignups": total,
        "dailySignups": sum(1 for c in created if c is not None and c >= today),
        "weeklySignups": sum(1 for c in created if c is not None and c >= week_ago),
        "monthlySignups": sum(1 for c in created if c is not None and c >= month_ago),
        "recentSignups": entries[:RECENT_SIGNUPS],
        "signupTrends": trends,
        "domainBreakdown": breakdown,
        "lastUpdated": _aware(now).isoformat(),
    }


def waitlist_users(
    entries: Iterable[Any],
    auth_users: Iterable[Any],
    analysis_counts: dict[str, int],
) -> dict[str, Any]:
    """Join waitlist entries with auth users by email to show conversion."""
    by_email = {u.email.lower(): u for u in auth_users if u.email}

    users = []
    for entry in entries:
        auth_user = by_email.get((entry.email or "").lower())
        last_sign_in = auth_user.last_sign_in_at if auth_user else None
        users.append({
            "id": str(entry.id),
            "email": entry.email,
            "waitlistSignupDate": _iso(entry.created_at),
            "hasSignedUp": auth_user is not None,
            "signupDate": _iso(auth_user.created_at) if auth_user else None,
            "lastSignIn": _iso(last_sign_in),
            "hasLoggedIn": last_sign_in is not None,
            "searchCount": analysis_counts.get(auth_user.id, 0) if auth_user else 0,
            "unsubscribeToken": str(entry.unsubscribe_token) if entry.unsubscribe_token else None,
        })

    signed_up = sum(1 for u in users if u["hasSignedUp"])
    return {
        "users": users,
        "total": len(users),
        "signedUp": signed_up,
        "notSignedUp": len(users) - signed_up,
    }


def user_rows(
    auth_users: Iterable[Any],
    profiles: dict[str, Any],
    activity: dict[str, tuple[int, Optional[datetime]]],
    search: str = "",
    provider: str = "",
    activity_filter: str = "",
) -> list[dict[str, Any]]:
    """
    Admin user list: auth users joined with profile names and analysis
    activity, filtered and sorted newest signup first.
    """
    rows = []
    for user in auth_users:
        profile = profiles.get(user.id)
        count, last_active = activity.get(user.id, (0, None))
        rows.append({
            "id": user.id,
            "email": user.email,
            "first_name": (profile.first_name if profile else None) or "",
            "last_name": (profile.last_name if profile else None) or "",
            "created_at": _iso(user.created_at),
            "last_active": _iso(last_active),
            "analysis_count": count,
            "provider": user.provider,
            "disabled": False,
        })

    if search:
        needle = search.lower()
        rows = [
            r for r in rows
            if needle in (r["email"] or "").lower()
            or needle in r["first_name"].lower()
            or needle in r["last_name"].lower()
        ]
    if provider:
        rows = [r for r in rows if r["provider"] == provider]
    if activity_filter == "active":
        rows = [r for r in rows if r["analysis_count"] > 0]
    elif activity_filter == "inactive":
        rows = [r for r in rows if r["analysis_count"] == 0]

    rows.sort(key=lambda r: r["created_at"] or "", reverse=True)
    return rows


def category_counts(feedback: Iterable[Any]) -> dict[str, int]:
    return dict(Counter(item.category or "general" for item in feedback))
