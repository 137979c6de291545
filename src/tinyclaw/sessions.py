# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Per-user session directories and conversation reset signals.

A session is keyed by (channel, senderId) and lives at
``{chats_dir}/{channel}_{senderId}`` with both ids sanitized. The agent
keeps its whole conversation state inside that directory; nothing here looks
inside it.

Reset signals are marker files: one per user under ``reset_flags/`` and one
global ``reset_flag``. The next job for an affected user consumes them and
starts a fresh conversation.

Also usable as a CLI (``tinyclaw-sessions list|reset|view``).
"""

import argparse
import logging
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from tinyclaw import config
from tinyclaw.models import safe_token

log = logging.getLogger(__name__)

_SESSION_DIR_RE = re.compile(r"^(whatsapp|telegram|discord)_(.+)$")


def sanitize_sender_id(sender_id: str) -> str:
    """Map a sender id onto a filesystem-safe token.

    Not injective: "a.b" and "a:b" both become "a_b" and share a session.
    """
    return safe_token(sender_id)


def session_key(channel: str, sender_id: str) -> str:
    return f"{safe_token(channel)}_{sanitize_sender_id(sender_id)}"


class ResetFlags:
    """Two-tier test-and-clear store backed by marker files."""

    def __init__(self, flags_dir: Path, global_flag: Path):
        self.flags_dir = flags_dir
        self.global_flag = global_flag

    def user_flag(self, channel: str, sender_id: str) -> Path:
        return self.flags_dir / session_key(channel, sender_id)

    def set_user_reset(self, channel: str, sender_id: str) -> Path:
        self.flags_dir.mkdir(parents=True, exist_ok=True)
        flag = self.user_flag(channel, sender_id)
        flag.write_text("reset")
        return flag

    def set_global_reset(self) -> Path:
        self.global_flag.parent.mkdir(parents=True, exist_ok=True)
        self.global_flag.write_text("reset")
        return self.global_flag

    def is_set(self, channel: str, sender_id: str) -> bool:
        return self.user_flag(channel, sender_id).exists() or self.global_flag.exists()

    def test_and_clear(self, channel: str, sender_id: str) -> bool:
        """Return True if a user or global reset is pending, consuming both.

        Each flag is consumed by unlinking it; only the caller whose unlink
        succeeds sees it as set.
        """
        reset = False
        for flag in (self.user_flag(channel, sender_id), self.global_flag):
            try:
                flag.unlink()
            except FileNotFoundError:
                continue
            reset = True
        return reset


class SessionManager:
    def __init__(self, chats_dir: Path, reset_flags: ResetFlags):
        self.chats_dir = chats_dir
        self.reset_flags = reset_flags

    def session_dir(self, channel: str, sender_id: str) -> Path:
        return self.chats_dir / session_key(channel, sender_id)

    def resolve_session_dir(self, channel: str, sender_id: str) -> Path:
        """Return the session directory for a user, creating it on first use."""
        session_dir = self.session_dir(channel, sender_id)
        if not session_dir.is_dir():
            session_dir.mkdir(parents=True, exist_ok=True)
            log.info(f"Created new session directory: {session_dir}")
        return session_dir

    def should_reset(self, channel: str, sender_id: str) -> bool:
        return self.reset_flags.test_and_clear(channel, sender_id)


def default_session_manager() -> SessionManager:
    return SessionManager(config.CHATS_DIR, ResetFlags(config.RESET_FLAGS_DIR, config.RESET_FLAG))


# =============================================================================
# Session inspection
# =============================================================================


@dataclass
class SessionInfo:
    channel: str
    sender_id: str
    path: Path
    last_modified: float
    size: int


def directory_size(path: Path) -> int:
    size = 0
    try:
        for entry in path.rglob("*"):
            if entry.is_file():
                size += entry.stat().st_size
    except OSError:
        pass
    return size


def list_sessions(chats_dir: Path) -> list[SessionInfo]:
    """Return real-channel sessions, most recently active first."""
    if not chats_dir.exists():
        return []
    sessions = []
    for entry in chats_dir.iterdir():
        match = _SESSION_DIR_RE.match(entry.name)
        if not match or not entry.is_dir():
            continue
        sessions.append(
            SessionInfo(
                channel=match.group(1),
                sender_id=match.group(2),
                path=entry,
                last_modified=entry.stat().st_mtime,
                size=directory_size(entry),
            )
        )
    sessions.sort(key=lambda s: s.last_modified, reverse=True)
    return sessions


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f}KB"
    return f"{num_bytes / (1024 * 1024):.1f}MB"


def relative_time(timestamp: float) -> str:
    ago = int(time.time() - timestamp)
    if ago < 3600:
        return f"{max(ago, 0) // 60}m ago"
    if ago < 86400:
        return f"{ago // 3600}h ago"
    return f"{ago // 86400}d ago"


# =============================================================================
# CLI
# =============================================================================


def cmd_list(manager: SessionManager, args: argparse.Namespace) -> int:
    sessions = list_sessions(manager.chats_dir)
    if not sessions:
        print("\nNo active sessions yet.")
        print("Sessions will be created when users send messages.\n")
        return 0

    print(f"\n📁 Active Sessions ({len(sessions)}):\n")
    grouped: dict[str, list[SessionInfo]] = {}
    for session in sessions:
        grouped.setdefault(session.channel, []).append(session)

    for channel, channel_sessions in grouped.items():
        print(f"  {channel.upper()} ({len(channel_sessions)}):")
        for session in channel_sessions:
            print(f"    • {session.sender_id}")
            print(f"      Last active: {relative_time(session.last_modified)}")
            print(f"      Size: {format_size(session.size)}")
        print()
    return 0


def cmd_reset(manager: SessionManager, args: argparse.Namespace) -> int:
    if args.all:
        manager.reset_flags.set_global_reset()
        print("\n✅ Global reset scheduled: every user's next message starts fresh.\n")
        return 0

    if not args.channel or not args.sender_id:
        print("Error: Please provide channel and senderId (or --all)", file=sys.stderr)
        return 1

    session_dir = manager.session_dir(args.channel, args.sender_id)
    if not session_dir.exists():
        print(f"\nError: Session not found for {args.channel} user {args.sender_id}\n", file=sys.stderr)
        return 1

    manager.reset_flags.set_user_reset(args.channel, args.sender_id)
    print("\n✅ Reset scheduled for next message\n")
    print(f"  Channel: {args.channel}")
    print(f"  User: {args.sender_id}\n")
    print("The next message from this user will start a fresh conversation.\n")
    return 0


def cmd_view(manager: SessionManager, args: argparse.Namespace) -> int:
    session_dir = manager.session_dir(args.channel, args.sender_id)
    if not session_dir.exists():
        print(f"\nError: Session not found for {args.channel} user {args.sender_id}\n", file=sys.stderr)
        return 1

    print("\n📊 Session Details\n")
    print(f"  Channel: {args.channel}")
    print(f"  User ID: {args.sender_id}")
    print(f"  Location: {session_dir}")
    print(f"  Last active: {relative_time(session_dir.stat().st_mtime)}")
    print(f"  Size: {format_size(directory_size(session_dir))}")
    if manager.reset_flags.is_set(args.channel, args.sender_id):
        print("  Reset: pending")

    entries = sorted(session_dir.iterdir())
    if entries:
        print("\n  Files:")
        for entry in entries:
            if entry.is_file():
                print(f"    • {entry.name} ({format_size(entry.stat().st_size)})")
            else:
                print(f"    • {entry.name}/ (directory)")
    print()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinyclaw-sessions", description="Inspect and reset per-user agent sessions."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List all active sessions").set_defaults(func=cmd_list)

    reset = sub.add_parser("reset", help="Start a user's next conversation fresh")
    reset.add_argument("channel", nargs="?")
    reset.add_argument("sender_id", nargs="?", metavar="senderId")
    reset.add_argument("--all", action="store_true", help="Reset every user's conversation")
    reset.set_defaults(func=cmd_reset)

    view = sub.add_parser("view", help="Show session details")
    view.add_argument("channel")
    view.add_argument("sender_id", metavar="senderId")
    view.set_defaults(func=cmd_view)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(default_session_manager(), args)


if __name__ == "__main__":
    sys.exit(main())
