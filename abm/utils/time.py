from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

TZ_LOCAL = ZoneInfo("Australia/Melbourne")

def now_local() -> datetime:
    return datetime.now(TZ_LOCAL)

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def today_iso() -> str:
    """UTC date as YYYY-MM-DD (the check_date convention on OSM)."""
    return now_utc().date().isoformat()

def parse_osm_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an OSM API timestamp like 2024-01-15T10:00:00Z. Returns None if unusable."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(text)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
