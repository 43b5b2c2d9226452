from pacemates.core.constants import KM_M


def seconds_to_hhmmss(total_seconds: int) -> str:
    """
    Convert total seconds (int) -> 'HH:MM:SS'.
    Example: 2732 -> '00:45:32'
    """
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def meters_to_km(distance_m: float, ndigits: int = 2) -> float:
    return round(distance_m / KM_M, ndigits)


def compute_pace(duration_seconds: int, distance_m: float) -> str:
    """
    Compute pace per kilometer as 'M:SS/km' or 'MM:SS/km'.
    Example: duration=1800 sec, distance=6000 m -> '5:00/km'
    """
    if distance_m <= 0:
        return "0:00/km"

    pace_sec = int(duration_seconds / (distance_m / KM_M))

    minutes = pace_sec // 60
    seconds = pace_sec % 60
    return f"{minutes}:{seconds:02d}/km"


def to_local_datetime(dt, tz_name: str | None = None):
    """Convert a datetime from source tz (assume UTC if naive) to local or given tz.

    - If `tz_name` is 'local' or None: use system local timezone.
    - If `tz_name` is IANA tz name (e.g., 'America/Sao_Paulo'): use that.
    - If `dt` has no tzinfo, assume UTC.
    """
    from datetime import timezone
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if tz_name and tz_name != "local":
        try:
            return dt.astimezone(ZoneInfo(tz_name))
        except ZoneInfoNotFoundError:
            return dt.astimezone()
    return dt.astimezone()
