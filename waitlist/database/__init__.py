# waitlist/database/__init__.py
from .connection import get_db_connection, release_db_connection, DatabaseConnection
from .email_blast_repository import EmailBlastRepository
from .blast_recipient_repository import BlastRecipientRepository
from .tier_repository import TierRepository

__all__ = [
    "get_db_connection",
    "release_db_connection",
    "DatabaseConnection",
    "EmailBlastRepository",
    "BlastRecipientRepository",
    "TierRepository",
]
