from datetime import datetime, timezone


def date_now() -> datetime:
    # exec plugins report expiry as an aware timestamp, so compare with one
    return datetime.now(timezone.utc)
