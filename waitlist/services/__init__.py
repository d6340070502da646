# waitlist/services/__init__.py
from .email_blast_service import email_blast_service
from .blast_recipient_service import blast_recipient_service
from .tier_service import tier_service

__all__ = [
    'email_blast_service',
    'blast_recipient_service',
    'tier_service',
]
