# src/inboxsync/infrastructure/__init__.py
"""Infrastructure layer - external services, databases, and configuration."""

from inboxsync.infrastructure.log_config import configure_logging
from inboxsync.infrastructure.settings import Settings, get_settings


# Store and client wiring (lazy import to keep psycopg/boto3 off the import path)
def get_mail_store(*args, **kwargs):
    """Get the configured metadata + checkpoint store (lazy import)."""
    from inboxsync.infrastructure.stores import get_mail_store as _get
    return _get(*args, **kwargs)


def get_content_store(*args, **kwargs):
    """Get the S3 content store (lazy import)."""
    from inboxsync.infrastructure.content.s3_store import s3_store_from_settings as _get
    return _get(*args, **kwargs)


__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Logging
    "configure_logging",
    # Stores
    "get_mail_store",
    "get_content_store",
]
