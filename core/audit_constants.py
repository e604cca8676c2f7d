"""
Canonical audit event type strings.
"""

EVENT_ARCHIVE_CREATED = "archive.created"
EVENT_ARCHIVE_RESTORED = "archive.restored"
EVENT_ARCHIVE_PURGED = "archive.purged"
EVENT_ARCHIVE_BACKFILLED = "archive.backfilled"

__all__ = [
    "EVENT_ARCHIVE_CREATED",
    "EVENT_ARCHIVE_RESTORED",
    "EVENT_ARCHIVE_PURGED",
    "EVENT_ARCHIVE_BACKFILLED",
]
