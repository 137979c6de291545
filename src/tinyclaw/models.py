# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Inbound job and outbound response records exchanged with channel adapters."""

import json
import re
from dataclasses import dataclass

CHANNELS = ("whatsapp", "telegram", "discord", "heartbeat")
HEARTBEAT_CHANNEL = "heartbeat"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def safe_token(value: str) -> str:
    """Map an id onto a token usable as a single path component.

    Not injective: "a.b" and "a:b" both become "a_b".
    """
    return _UNSAFE_CHARS.sub("_", value)


class JobValidationError(ValueError):
    """An inbound record that can never be processed as-is."""


@dataclass
class Job:
    channel: str
    sender: str
    sender_id: str
    message: str
    timestamp: float
    message_id: str

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        if not isinstance(data, dict):
            raise JobValidationError("job must be a JSON object")
        sender_id = data.get("senderId")
        if not sender_id:
            raise JobValidationError("senderId is required for message processing")
        return cls(
            channel=str(data.get("channel", "")),
            sender=str(data.get("sender", "")),
            sender_id=str(sender_id),
            message=str(data.get("message") or ""),
            timestamp=data.get("timestamp", 0),
            message_id=str(data.get("messageId", "")),
        )

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "sender": self.sender,
            "senderId": self.sender_id,
            "message": self.message,
            "timestamp": self.timestamp,
            "messageId": self.message_id,
        }


def parse_job(text: str) -> Job:
    """Parse the JSON body of an inbound job file."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise JobValidationError(f"invalid job JSON: {e}") from e
    return Job.from_dict(data)


@dataclass
class Response:
    channel: str
    sender: str
    message: str
    original_message: str
    timestamp: int
    message_id: str

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "sender": self.sender,
            "message": self.message,
            "originalMessage": self.original_message,
            "timestamp": self.timestamp,
            "messageId": self.message_id,
        }
