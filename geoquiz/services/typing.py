from datetime import datetime

def to_iso(value) -> str:
    # Supabase returns either an ISO string or a datetime
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
