# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Directory-backed job queue.

Each record is one JSON file living in exactly one partition:

    incoming/    written by channel adapters, waiting to be claimed
    processing/  claimed by the processor, agent call in flight
    outgoing/    responses waiting for channel adapters to deliver
    failed/      dead letters (only when an attempt limit is configured)

Ownership moves between partitions with ``os.rename``, so a crash leaves a
record in one place, never two. New files are written under a dot-prefixed
temporary name and renamed into place so listings never see partial JSON.
"""

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path

from tinyclaw.models import Job, Response, safe_token

log = logging.getLogger(__name__)


class RecordVanished(Exception):
    """The record was no longer in incoming when we tried to claim it."""


def write_atomic_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` without readers ever seeing a partial file."""
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def _write_atomic(path: Path, data: dict) -> None:
    write_atomic_text(path, json.dumps(data, indent=2))


class QueueStore:
    def __init__(
        self, incoming: Path, processing: Path, outgoing: Path, failed: Path | None = None
    ):
        self.incoming = incoming
        self.processing = processing
        self.outgoing = outgoing
        self.failed = failed

    @classmethod
    def from_root(cls, root: Path) -> "QueueStore":
        return cls(root / "incoming", root / "processing", root / "outgoing", root / "failed")

    def ensure_dirs(self) -> None:
        for d in (self.incoming, self.processing, self.outgoing, self.failed):
            if d is not None:
                d.mkdir(parents=True, exist_ok=True)

    def enqueue_incoming(self, job: Job, name: str | None = None) -> Path:
        """Persist a job into incoming; it is visible to the next poll."""
        name = name or f"{safe_token(job.channel)}_{safe_token(job.message_id)}.json"
        path = self.incoming / name
        _write_atomic(path, job.to_dict())
        return path

    def list_incoming(self) -> Iterator[Path]:
        """Yield pending records oldest first (mtime, then name).

        The directory is read when iteration starts, so every poll sees a
        fresh snapshot.
        """
        entries = []
        for path in self.incoming.glob("*.json"):
            try:
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                continue
            entries.append((mtime, path.name, path))
        entries.sort(key=lambda e: (e[0], e[1]))
        for _, _, path in entries:
            yield path

    def processing_path(self, record: Path) -> Path:
        return self.processing / record.name

    def claim(self, record: Path) -> Path:
        """Move a record from incoming to processing and return its new path."""
        dest = self.processing_path(record)
        try:
            os.rename(self.incoming / record.name, dest)
        except FileNotFoundError as e:
            raise RecordVanished(record.name) from e
        return dest

    def release(self, record: Path) -> Path:
        """Return a claimed record to incoming for retry on the next poll."""
        dest = self.incoming / record.name
        os.rename(self.processing_path(record), dest)
        return dest

    def complete(self, record: Path) -> None:
        """Drop the processing copy once its response is in outgoing."""
        try:
            self.processing_path(record).unlink()
        except FileNotFoundError:
            log.warning(f"Processing copy of {record.name} already gone")

    def dead_letter(self, record: Path) -> Path:
        if self.failed is None:
            raise RuntimeError("no dead-letter directory configured")
        self.failed.mkdir(parents=True, exist_ok=True)
        dest = self.failed / record.name
        os.rename(self.processing_path(record), dest)
        return dest

    def emit(self, response: Response, routing_key: str) -> Path:
        """Write a response into outgoing under ``routing_key``, replacing any namesake."""
        path = self.outgoing / routing_key
        _write_atomic(path, response.to_dict())
        return path

    def recover_processing(self) -> int:
        """Move records left in processing by a previous run back to incoming."""
        recovered = 0
        for path in sorted(self.processing.glob("*.json")):
            try:
                os.rename(path, self.incoming / path.name)
            except OSError as e:
                log.error(f"Failed to recover {path.name} from processing: {e}")
                continue
            recovered += 1
            log.info(f"Recovered interrupted job {path.name}")
        return recovered

    def counts(self) -> dict[str, int]:
        counts = {}
        for name, d in (
            ("incoming", self.incoming),
            ("processing", self.processing),
            ("outgoing", self.outgoing),
            ("failed", self.failed),
        ):
            counts[name] = len(list(d.glob("*.json"))) if d is not None and d.exists() else 0
        return counts
