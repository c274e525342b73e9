"""
Manifest logic for deploytables.
Revision records are append-only; the current pointer is the only row ever replaced.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .errors import AlreadyUploadedError, DuplicateKeyError, UnknownRevisionError
from .keys import derive_current_key
from .models import RevisionListEntry, RevisionRecord
from .tables import TableClient, row_key_eq, row_key_ne

MANIFEST_TAG = "manifest"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _epoch_millis(ts: Optional[datetime]) -> int:
    if ts is None:
        return 0
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - _EPOCH) // timedelta(milliseconds=1)

def _project_of(key: str) -> str:
    # Project names never contain ":", the token may
    return key.split(":", 1)[0]


class ManifestStore:
    """Reads and writes the revision manifest held in one table partition."""
    def __init__(self, client: TableClient):
        self.client = client

    async def get_current(self, project_name: str) -> Optional[str]:
        """Return the key of the active revision, or None before the first activation."""
        await self.client.ensure_table()
        entries = await self.client.query_entities(MANIFEST_TAG, row_key_eq(derive_current_key(project_name)))
        if entries:
            return entries[0].content
        return None

    async def get_revision(self, key: str) -> Optional[RevisionRecord]:
        """Point lookup of a stored revision."""
        await self.client.ensure_table()
        entries = await self.client.query_entities(MANIFEST_TAG, row_key_eq(key))
        return entries[0] if entries else None

    async def list_revisions(self, project_name: str) -> List[RevisionListEntry]:
        """
        List every uploaded revision, most recent first.
        Callers rely on index 0 being the newest deployable revision.
        """
        current = await self.get_current(project_name)

        await self.client.ensure_table()
        records = await self.client.query_entities(MANIFEST_TAG, row_key_ne(derive_current_key(project_name)))
        # The partition is shared by every project, including their pointer rows
        prefix = f"{project_name}:"
        records = [r for r in records if r.row_key.startswith(prefix)]

        # sorted() is stable, equal timestamps keep backend order
        records = sorted(records, key=lambda r: _epoch_millis(r.timestamp), reverse=True)
        return [
            RevisionListEntry(
                revision=r.row_key,
                timestamp=_epoch_millis(r.timestamp),
                active=r.row_key == current,
            )
            for r in records
        ]

    async def upload(self, key: str, content: str) -> RevisionRecord:
        """
        Store content under key exactly once.
        The existence check and the insert are not atomic across processes; a lost race
        shows up as DuplicateKeyError from the service and is reported the same way.
        """
        existing = await self.get_revision(key)
        if existing is not None:
            raise AlreadyUploadedError(key)

        record = RevisionRecord(partition_key=MANIFEST_TAG, row_key=key, content=content)
        try:
            return await self.client.insert_entity(record)
        except DuplicateKeyError as e:
            raise AlreadyUploadedError(key) from e

    async def activate(self, key: str) -> None:
        """Point the project's current record at key. Last write wins."""
        project_name = _project_of(key)
        revisions = await self.list_revisions(project_name)
        if not any(entry.revision == key for entry in revisions):
            raise UnknownRevisionError(key)

        pointer = RevisionRecord(
            partition_key=MANIFEST_TAG,
            row_key=derive_current_key(project_name),
            content=key,
        )
        await self.client.insert_or_replace_entity(pointer)
