#!/usr/bin/env python3
# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (C) 2025 xnoto
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""Queue Processor - Relay channel messages to the agent, one at a time.

Channel adapters (WhatsApp, Telegram, Discord) drop JSON jobs into
~/.tinyclaw/queue/incoming. This processor polls that directory and, for
each job in arrival order:

- claims it by moving it to processing/
- resolves the sender's session directory (created on first message)
- consumes any pending reset signal (fresh conversation instead of -c)
- runs the agent in the session directory and waits for it
- trims/truncates the reply and writes it to outgoing/
- deletes the processing copy

Jobs are processed strictly sequentially, so two agent runs never touch the
same session directory at once. If anything fails after the claim, the job
goes back to incoming and is retried on the next poll. Agent failures are not
job failures: the user gets a fixed fallback reply instead.

On start-up, jobs left in processing/ by an interrupted run are moved back to
incoming/.
"""

import logging
import signal
import threading
import time
from collections.abc import Callable
from pathlib import Path

from tinyclaw import agent, config
from tinyclaw.logger import setup_logging
from tinyclaw.metrics import QueueMetrics
from tinyclaw.models import parse_job
from tinyclaw.response import MAX_RESPONSE_CHARS, build_response, response_filename
from tinyclaw.sessions import SessionManager, default_session_manager
from tinyclaw.store import QueueStore, RecordVanished, write_atomic_text

log = logging.getLogger(__name__)

Invoker = Callable[[Path, str, bool, str | None], str]


def _now_ms() -> int:
    return int(time.time() * 1000)


class QueueProcessor:
    """Single-consumer scheduler over a QueueStore."""

    def __init__(
        self,
        store: QueueStore,
        sessions: SessionManager,
        invoker: Invoker = agent.invoke,
        model_resolver: Callable[[], str | None] = config.resolve_model,
        metrics: QueueMetrics | None = None,
        max_attempts: int = 0,
        clock: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.sessions = sessions
        self.invoker = invoker
        self.model_resolver = model_resolver
        self.metrics = metrics or QueueMetrics()
        self.max_attempts = max_attempts
        self.clock = clock
        self.shutdown_event = threading.Event()
        self._attempts: dict[str, int] = {}
        self._single_flight = threading.Lock()

    def process_queue(self) -> int:
        """Run one poll: process every pending record, oldest first.

        Returns the number of records that completed with a response.
        """
        completed = 0
        with self._single_flight:
            self.metrics.inc("tinyclaw_polls_total")
            try:
                # Snapshot now; records arriving mid-batch wait for the next poll
                records = list(self.store.list_incoming())
            except OSError as e:
                log.error(f"Queue processing error: {e}")
                return 0

            if records:
                log.debug(f"Found {len(records)} message(s) in queue")

            for record in records:
                if self.shutdown_event.is_set():
                    break
                if self.process_record(record):
                    completed += 1
        return completed

    def process_record(self, record: Path) -> bool:
        """Take one record through claim → agent → outgoing. Returns True on completion."""
        try:
            processing = self.store.claim(record)
        except RecordVanished:
            log.debug(f"Skipping {record.name}: no longer in incoming")
            self._attempts.pop(record.name, None)
            return False

        try:
            self._handle(processing)
        except Exception as e:
            log.error(f"Processing error: {e}")
            self.metrics.inc("tinyclaw_jobs_failed_total")
            self._recover(record)
            return False

        self._attempts.pop(record.name, None)
        self.metrics.inc("tinyclaw_jobs_total")
        return True

    def _handle(self, processing: Path) -> None:
        job = parse_job(processing.read_text(encoding="utf-8"))
        log.info(
            f"Processing [{job.channel}] from {job.sender} ({job.sender_id}): {job.message[:50]}..."
        )

        session_dir = self.sessions.resolve_session_dir(job.channel, job.sender_id)

        reset = self.sessions.should_reset(job.channel, job.sender_id)
        if reset:
            log.info(f"🔄 Resetting conversation for {job.sender} (starting fresh without -c)")
            self.metrics.inc("tinyclaw_resets_total")

        reply = self.invoker(session_dir, job.message, not reset, self.model_resolver())
        if reply == agent.FALLBACK_RESPONSE:
            self.metrics.inc("tinyclaw_agent_failures_total")

        completed_ms = self.clock()
        response = build_response(job, reply, completed_ms)
        if len(reply.strip()) > MAX_RESPONSE_CHARS:
            self.metrics.inc("tinyclaw_responses_truncated_total")

        self.store.emit(response, response_filename(job.channel, job.message_id, completed_ms))
        log.info(f"✓ Response ready [{job.channel}] {job.sender} ({len(response.message)} chars)")

        self.store.complete(processing)

    def _recover(self, record: Path) -> None:
        """Return a failed record to incoming, or dead-letter it past the attempt limit."""
        attempts = self._attempts.get(record.name, 0) + 1
        self._attempts[record.name] = attempts
        try:
            if self.max_attempts > 0 and attempts >= self.max_attempts:
                self.store.dead_letter(record)
                self._attempts.pop(record.name, None)
                self.metrics.inc("tinyclaw_jobs_dead_lettered_total")
                log.error(f"Moved {record.name} to failed after {attempts} attempt(s)")
            else:
                self.store.release(record)
                self.metrics.inc("tinyclaw_jobs_released_total")
        except OSError as e:
            log.error(f"Failed to move file back: {e}")

    def run(self, poll_interval: float = 1.0) -> None:
        """Poll until shutdown_event is set. An in-flight job always finishes."""
        self.store.ensure_dirs()
        recovered = self.store.recover_processing()
        if recovered:
            log.info(f"Returned {recovered} interrupted job(s) to incoming")

        while not self.shutdown_event.is_set():
            try:
                self.process_queue()
            except Exception as e:
                log.error(f"Queue processing error: {e}")
            self.shutdown_event.wait(poll_interval)


def write_metrics(metrics: QueueMetrics, store: QueueStore, path: Path) -> None:
    """Refresh queue depths and replace the Prometheus snapshot at `path`."""
    metrics.set_queue_depths(store.counts())
    write_atomic_text(path, metrics.to_prometheus())


# =============================================================================
# Main
# =============================================================================


def main():
    setup_logging(config.LOG_FILE, config.LOG_LEVEL)

    store = QueueStore(
        config.QUEUE_INCOMING, config.QUEUE_PROCESSING, config.QUEUE_OUTGOING, config.QUEUE_FAILED
    )
    store.ensure_dirs()
    config.RESET_FLAGS_DIR.mkdir(parents=True, exist_ok=True)
    config.CHATS_DIR.mkdir(parents=True, exist_ok=True)

    processor = QueueProcessor(
        store, default_session_manager(), max_attempts=config.MAX_ATTEMPTS
    )
    shutdown_event = processor.shutdown_event

    log.info("Queue processor started")
    log.info(f"Watching: {config.QUEUE_INCOMING}")
    log.info(f"Sessions: {config.CHATS_DIR}")
    if config.MAX_ATTEMPTS > 0:
        log.info(f"Jobs failing {config.MAX_ATTEMPTS} time(s) move to {config.QUEUE_FAILED}")

    def shutdown_handler(signum, frame):
        log.info(f"Received signal {signum}, shutting down queue processor...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    def metrics_worker():
        """Background thread to write metrics and log summaries."""
        while not shutdown_event.is_set():
            try:
                write_metrics(processor.metrics, store, config.METRICS_FILE)
                log.debug(f"Metrics: {processor.metrics.log_summary()}")
            except Exception as e:
                log.error(f"Metrics worker error: {e}")
            shutdown_event.wait(config.METRICS_INTERVAL)

    metrics_thread = threading.Thread(target=metrics_worker, name="metrics-worker", daemon=True)
    metrics_thread.start()

    try:
        processor.run(config.POLL_INTERVAL)
    finally:
        shutdown_event.set()
        metrics_thread.join(timeout=2)
        log.info(f"Metrics: {processor.metrics.log_summary()}")
        log.info("Queue processor stopped")


if __name__ == "__main__":
    main()
