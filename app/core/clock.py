from datetime import datetime, timedelta

EPOCH = datetime(1970, 1, 1)
ONE_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    """Naive UTC now at MongoDB (millisecond) precision, so values round-trip unchanged."""
    now = datetime.utcnow()
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def epoch_ms(value: datetime) -> int:
    return (value - EPOCH) // ONE_MS
