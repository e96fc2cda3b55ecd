from datetime import datetime, timezone
import time


def now_utc():
    return datetime.now(timezone.utc)

def monotonic():
    return time.monotonic()

def parse_utc(text):
    if not text:
        return None
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

def seconds_since(then, now):
    if then is None:
        return float("inf")
    return (now - then).total_seconds()
