"""Exception hierarchy for backup operations."""

from typing import Optional


class BackupError(Exception):
    """Base exception for backup operations."""
    pass


class EmptyBackupError(BackupError):
    """No notes matched the requested backup scope."""

    def __init__(self, note_id: Optional[str] = None):
        scope = f"note {note_id}" if note_id else "the note store"
        super().__init__(f"Nothing to back up in {scope}")
        self.note_id = note_id


class CorruptBackupError(BackupError):
    """Integrity digest missing, malformed or not matching the snapshots."""

    def __init__(self, backup_id: str, reason: str = "integrity digest mismatch"):
        super().__init__(f"Backup {backup_id} failed verification: {reason}")
        self.backup_id = backup_id
        self.reason = reason


class RemoteUnavailableError(BackupError):
    """The remote store could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackupNotFoundError(BackupError):
    """No backup with the given id exists."""

    def __init__(self, backup_id: str):
        super().__init__(f"Backup not found: {backup_id}")
        self.backup_id = backup_id


class MediaFetchError(BackupError):
    """A media reference could not be materialized."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"Failed to fetch media {reference}: {reason}")
        self.reference = reference
        self.reason = reason


class PartialRestoreError(BackupError):
    """Raised by callers that treat a restore with failed notes as an error."""

    def __init__(self, report):
        super().__init__(
            f"Restore of {report.backup_id} finished with "
            f"{report.failure_count} failed note(s)"
        )
        self.report = report

    @classmethod
    def raise_for(cls, report) -> None:
        if report.failure_count:
            raise cls(report)


class InvalidArchiveError(BackupError):
    """The archive is not a readable backup export."""
    pass
