#!/usr/bin/env python3
# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Queue Dashboard - Real-time view of the job queue, sessions, and processor metrics."""

import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from threading import Event, Lock

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from tinyclaw import config
from tinyclaw.sessions import format_size, list_sessions, relative_time
from tinyclaw.store import QueueStore

# VT100 / POSIX minimum terminal dimensions
MIN_COLS = 80
MIN_LINES = 24

# Synchronization
refresh_event = Event()
display_lock = Lock()


def get_terminal_width() -> int:
    """Get current terminal width, clamped to the VT100/POSIX minimum of 80 columns."""
    try:
        cols = os.get_terminal_size().columns
    except OSError:
        cols = MIN_COLS
    return max(cols, MIN_COLS)


class QueueEventHandler(FileSystemEventHandler):
    """Trigger refresh on any queue or metrics change."""

    def on_any_event(self, event):
        if event.event_type not in ["created", "deleted", "modified", "moved"]:
            return

        if str(event.src_path).endswith((".json", ".prom")):
            refresh_event.set()


def clear_screen():
    print("\033[2J\033[H", end="")


def load_json(path: Path) -> dict | None:
    """Safely load a queue record."""
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, FileNotFoundError, PermissionError):
        return None
    return data if isinstance(data, dict) else None


def default_store() -> QueueStore:
    return QueueStore(
        config.QUEUE_INCOMING, config.QUEUE_PROCESSING, config.QUEUE_OUTGOING, config.QUEUE_FAILED
    )


def print_header(w: int) -> None:
    print("═" * w)
    print("TINYCLAW QUEUE".center(w))
    print("═" * w)
    print()


def print_processor_status(w: int) -> None:
    print("🔧 PROCESSOR STATUS")
    print("─" * w)

    try:
        result = subprocess.run(
            ["pgrep", "-f", "tinyclaw-queue|tinyclaw.processor"], capture_output=True, text=True
        )
        pids = [p for p in result.stdout.strip().split("\n") if p]
    except OSError:
        pids = []

    if pids:
        print(f"  Status: RUNNING (PID {pids[0]})")
    else:
        print("  Status: STOPPED")
    print()


def print_queue_depths(w: int, store: QueueStore) -> None:
    print("📬 QUEUE")
    print("─" * w)
    counts = store.counts()
    print(
        f"  Incoming: {counts['incoming']} │ Processing: {counts['processing']} │ "
        f"Outgoing: {counts['outgoing']} │ Failed: {counts['failed']}"
    )
    print()


def _format_records(w: int, paths: list[Path]) -> None:
    # Column layout: "  {channel} {sender} {message} {time_str}"
    # Fixed chars: 2 (indent) + 3 (spaces) = 5, time_str reserve 10
    available = w - 5 - 10
    chan_w = max(8, available * 15 // 100)
    sender_w = max(8, available * 20 // 100)
    msg_w = max(10, available - chan_w - sender_w)

    for path in paths:
        data = load_json(path)
        if not data:
            continue
        channel = str(data.get("channel", "?"))[:chan_w]
        sender = str(data.get("sender", "?"))[:sender_w]
        message = str(data.get("message", "")).replace("\n", " ")[:msg_w]
        stamp = data.get("timestamp") or 0
        time_str = relative_time(stamp / 1000) if isinstance(stamp, (int, float)) and stamp else "?"
        print(f"  {channel:<{chan_w}} {sender:<{sender_w}} {message:<{msg_w}} {time_str}")


def print_incoming(w: int, store: QueueStore) -> None:
    print("📥 PENDING (oldest first)")
    print("─" * w)
    paths = list(store.list_incoming())[:10] if store.incoming.exists() else []
    if not paths:
        print("  (queue empty)")
    else:
        _format_records(w, paths)
    print()


def print_outgoing(w: int, store: QueueStore) -> None:
    print("📤 RECENT RESPONSES (last 10)")
    print("─" * w)
    if not store.outgoing.exists():
        print("  (no outgoing directory)")
        print()
        return

    paths = []
    for path in store.outgoing.glob("*.json"):
        try:
            paths.append((path.stat().st_mtime, path))
        except FileNotFoundError:
            continue
    paths.sort(reverse=True)

    if not paths:
        print("  (no responses waiting)")
    else:
        _format_records(w, [p for _, p in paths[:10]])
    print()


def print_sessions(w: int, chats_dir: Path) -> None:
    print("📁 SESSIONS")
    print("─" * w)
    sessions = list_sessions(chats_dir)
    if not sessions:
        print("  (no sessions yet)")
        print()
        return

    # Column layout: "  {channel/id} {last active:>12} {size:>12}"
    id_w = max(10, w - 2 - 26)
    for s in sessions[:10]:
        label = f"{s.channel}/{s.sender_id}"[:id_w]
        print(f"  {label:<{id_w}} {relative_time(s.last_modified):>12} {format_size(s.size):>12}")
    if len(sessions) > 10:
        print(f"  ... and {len(sessions) - 10} more")
    print()


def parse_prom_file(path: Path) -> dict[str, float]:
    """Parse a Prometheus text format file and return metric name → value mapping.

    Skips comment lines (# HELP, # TYPE) and blank lines.
    Returns an empty dict if the file is missing or malformed.
    """
    metrics: dict[str, float] = {}
    try:
        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                parts = line.split(None, 1)
                if len(parts) == 2:
                    try:
                        metrics[parts[0]] = float(parts[1])
                    except ValueError:
                        continue
    except OSError:
        pass
    return metrics


def print_metrics_panel(w: int, metrics_file: Path) -> None:
    """Display processor counters from the metrics.prom snapshot."""
    print("📊 PROCESSOR METRICS")
    print("─" * w)

    metrics = parse_prom_file(metrics_file)
    if not metrics:
        print("  (no metrics available)")
        print()
        return

    jobs = metrics.get("tinyclaw_jobs_total")
    failed = metrics.get("tinyclaw_jobs_failed_total")
    agent_failures = metrics.get("tinyclaw_agent_failures_total")
    resets = metrics.get("tinyclaw_resets_total")
    truncated = metrics.get("tinyclaw_responses_truncated_total")

    parts = []
    if jobs is not None:
        parts.append(f"Jobs: {int(jobs)}")
    if failed is not None:
        parts.append(f"Failed: {int(failed)}")
    if agent_failures is not None:
        parts.append(f"Agent errors: {int(agent_failures)}")
    if resets is not None:
        parts.append(f"Resets: {int(resets)}")
    if truncated is not None:
        parts.append(f"Truncated: {int(truncated)}")
    if parts:
        print(f"  {' │ '.join(parts)}")
    print()


def render_dashboard() -> None:
    """Render the full dashboard, adapting to current terminal width."""
    w = get_terminal_width()
    store = default_store()
    with display_lock:
        clear_screen()
        print_header(w)
        print_processor_status(w)
        print_queue_depths(w, store)
        print_incoming(w, store)
        print_outgoing(w, store)
        print_sessions(w, config.CHATS_DIR)
        print_metrics_panel(w, config.METRICS_FILE)
        print("─" * w)
        print("  Watching for changes... (Ctrl+C to exit)")
        sys.stdout.flush()


def main():
    store = default_store()
    store.ensure_dirs()

    observer = Observer()
    handler = QueueEventHandler()
    for d in (store.incoming, store.processing, store.outgoing, store.failed):
        observer.schedule(handler, str(d), recursive=False)
    # Watch the home directory itself for metrics.prom changes
    observer.schedule(handler, str(config.TINYCLAW_HOME), recursive=False)

    observer.start()

    # Re-render on terminal resize (SIGWINCH) if supported
    if hasattr(signal, "SIGWINCH"):
        signal.signal(signal.SIGWINCH, lambda *_: refresh_event.set())

    try:
        render_dashboard()

        while True:
            # Wait for filesystem event or timeout (for processor status updates)
            triggered = refresh_event.wait(timeout=10)
            if triggered:
                refresh_event.clear()
                # Small debounce to batch rapid changes
                time.sleep(0.05)
            render_dashboard()

    except KeyboardInterrupt:
        print("\n  Exiting...")
    finally:
        observer.stop()
        observer.join()


if __name__ == "__main__":
    main()
