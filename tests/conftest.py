"""Shared fixtures: a throwaway queue and session tree per test."""

import pytest

from tinyclaw.sessions import ResetFlags, SessionManager
from tinyclaw.store import QueueStore


@pytest.fixture
def store(tmp_path):
    s = QueueStore.from_root(tmp_path / "queue")
    s.ensure_dirs()
    return s


@pytest.fixture
def sessions(tmp_path):
    return SessionManager(
        tmp_path / "chats", ResetFlags(tmp_path / "reset_flags", tmp_path / "reset_flag")
    )
