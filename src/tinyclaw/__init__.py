# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto

"""tinyclaw - Durable message queue between chat channels and a conversational agent."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tinyclaw")
except PackageNotFoundError:  # pragma: no cover - fallback for dev
    __version__ = "0.1.0"
