"""
Time formatting for labels on the ruler, bookmarks and the event list.
"""


def format_relative_time(ms: int) -> str:
    """
    Format relative milliseconds as m:ss.mmm (or h:mm:ss.mmm past an hour).

    Args:
        ms: Relative time in milliseconds

    Returns:
        str: Formatted time
    """
    ms = max(0, int(ms))
    total_seconds = ms // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    millis = ms % 1000

    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}.{millis:03d}"
    return f"{minutes}:{seconds:02d}.{millis:03d}"


def format_duration(ms: int) -> str:
    """Format a duration as 850ms, 12.3s or 4m 7s."""
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    minutes = ms // 60000
    seconds = (ms % 60000) // 1000
    return f"{minutes}m {seconds}s"
