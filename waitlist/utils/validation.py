# waitlist/utils/validation.py
import re
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID
from waitlist.errors import ValidationError

def validate_email(email: str) -> bool:
    """Validate email format with strict RFC compliance"""
    if not email or len(email) > 254:
        return False

    pattern = r'^[a-zA-Z0-9.!#$%&\'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'

    if not re.match(pattern, email):
        return False

    local, domain = email.rsplit('@', 1)
    if len(local) > 64 or len(domain) > 253:
        return False

    return True

def require_id(value: Optional[UUID], field: str) -> UUID:
    """Reject missing or all-zero identifiers"""
    if value is None or (isinstance(value, UUID) and value.int == 0):
        raise ValidationError(f"{field} is required", field=field)
    return value

def require_text(value: Optional[str], field: str, max_length: int = 255) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return value

def require_positive(value: Optional[int], field: str, maximum: Optional[int] = None) -> int:
    if value is None or value < 1:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be at most {maximum}", field=field)
    return value

def require_non_negative(value: int, field: str) -> int:
    if value is None or value < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return value

def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with TIMESTAMPTZ values"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def normalize_page(page: Optional[int], limit: Optional[int], default_limit: int, max_limit: int) -> Tuple[int, int, int]:
    """Clamp pagination input, returning (page, limit, offset)"""
    if not page or page <= 0:
        page = 1
    if not limit or limit <= 0:
        limit = default_limit
    if limit > max_limit:
        limit = max_limit
    return page, limit, (page - 1) * limit

def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit
