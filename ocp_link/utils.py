import math
import time


def parse_number(text):
    """
    Parse text as int, falling back to float.
    Returns None if neither parse succeeds or the value is not finite.
    """
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_bool(text):
    """Parse 'true'/'false' (any case). Returns None otherwise."""
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def format_value(value, max_len=30):
    """Short display form of a setting value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, str) and len(value) > max_len:
        return value[:max_len - 3] + "..."
    return str(value)


def wait_or_cancel(duration, stop_event=None):
    """
    Sleep for duration seconds.
    Returns False if stop_event was set before or during the wait.
    """
    if stop_event is None:
        time.sleep(duration)
        return True
    return not stop_event.wait(duration)
