# breakwatch/core/market/calendar.py

from datetime import datetime, date, time, timedelta
from typing import Optional
import pytz

IST = pytz.timezone("Asia/Kolkata")

# NSE cash segment, IST
PRE_OPEN = time(9, 0)
MARKET_OPEN = time(9, 15)
MARKET_CLOSE = time(15, 30)
EXTENDED_CLOSE = time(16, 0)


def now_ist() -> datetime:
    return datetime.now(IST)


def to_ist_date(ts: datetime) -> date:
    """Calendar date of a timestamp in IST. Naive timestamps are taken as UTC."""
    if ts.tzinfo is None:
        ts = pytz.utc.localize(ts)
    return ts.astimezone(IST).date()


def today_ist() -> date:
    """
    The trading-day key for every date-scoped cache.
    Rolls over at Indian midnight regardless of the server timezone.
    """
    return now_ist().date()


def _as_ist(now: Optional[datetime]) -> datetime:
    if now is None:
        return now_ist()
    if now.tzinfo is None:
        return IST.localize(now)
    return now.astimezone(IST)


def is_market_hours(now: Optional[datetime] = None) -> bool:
    """True during 09:15 - 15:30 IST on weekdays."""
    now = _as_ist(now)
    if now.weekday() >= 5:
        return False
    return MARKET_OPEN <= now.time() < MARKET_CLOSE


def is_extended_hours(now: Optional[datetime] = None) -> bool:
    """True during 09:00 - 16:00 IST on weekdays (includes the closing session)."""
    now = _as_ist(now)
    if now.weekday() >= 5:
        return False
    return PRE_OPEN <= now.time() < EXTENDED_CLOSE


def minutes_until_open(now: Optional[datetime] = None) -> int:
    """Minutes until the next weekday 09:15 IST. 0 while the market is open."""
    now = _as_ist(now)
    if is_market_hours(now):
        return 0

    next_open = now.replace(hour=MARKET_OPEN.hour, minute=MARKET_OPEN.minute, second=0, microsecond=0)
    if now.time() >= MARKET_OPEN:
        next_open += timedelta(days=1)
    # Exchange holidays are not modelled
    while next_open.weekday() >= 5:
        next_open += timedelta(days=1)
    return int((next_open - now.replace(second=0, microsecond=0)).total_seconds() // 60)
