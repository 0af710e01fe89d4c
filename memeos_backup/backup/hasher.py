"""Content fingerprints and backup integrity digests."""

from typing import Iterable, List, Set

from .._utils import logger
from .exceptions import CorruptBackupError
from .models import Backup, Note, NoteSnapshot
from .utils import DIGEST_SCHEME, canonical_json, compute_document_digest, is_legacy_digest, verify_checksum


class ContentHasher:
    """Pure, deterministic hashing over notes and snapshots.

    The fingerprint of a note covers only its content, tags and creation
    time, so edits to titles or ``updated_at`` never make a restored note look
    new. The integrity digest of a backup covers the full canonical form of its
    snapshot sequence, fingerprints included.
    """

    def fingerprint(self, note: Note) -> str:
        return note.content_fingerprint()

    def snapshot(self, note: Note) -> NoteSnapshot:
        return NoteSnapshot.of(note)

    def snapshot_all(self, notes: Iterable[Note]) -> List[NoteSnapshot]:
        return [self.snapshot(note) for note in notes]

    def live_fingerprints(self, notes: Iterable[Note]) -> Set[str]:
        return {self.fingerprint(note) for note in notes}

    def integrity_digest(self, snapshots: Iterable[NoteSnapshot]) -> str:
        return compute_document_digest([s.to_payload() for s in snapshots])

    def verify(self, backup: Backup) -> bool:
        """Check the stored digest and every snapshot fingerprint."""
        if not backup.integrity_digest or not backup.integrity_digest.startswith(DIGEST_SCHEME):
            logger.debug(f"Backup {backup.id} has no sha256 integrity digest")
            return False

        document = [s.to_payload() for s in backup.notes]
        if not verify_checksum(canonical_json(document).encode("utf-8"), backup.integrity_digest):
            return False

        for snapshot in backup.notes:
            if snapshot.fingerprint != snapshot.content_fingerprint():
                logger.debug(f"Snapshot {snapshot.id} of backup {backup.id} has a stale fingerprint")
                return False
        return True

    def verify_or_raise(self, backup: Backup) -> None:
        """Raise ``CorruptBackupError`` unless ``backup`` verifies."""
        if not backup.integrity_digest:
            raise CorruptBackupError(backup.id, "missing integrity digest")
        if is_legacy_digest(backup.integrity_digest):
            raise CorruptBackupError(backup.id, "legacy hash mismatch")
        if not backup.integrity_digest.startswith(DIGEST_SCHEME):
            raise CorruptBackupError(backup.id, "unsupported digest scheme")
        if not self.verify(backup):
            raise CorruptBackupError(backup.id)
