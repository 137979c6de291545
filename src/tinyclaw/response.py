# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Shape agent output into outgoing response records."""

from tinyclaw.models import HEARTBEAT_CHANNEL, Job, Response, safe_token

MAX_RESPONSE_CHARS = 4000
TRUNCATED_LENGTH = 3900
TRUNCATION_MARKER = "\n\n[Response truncated...]"


def shape_response(text: str) -> str:
    """Trim whitespace and cap the reply length for chat delivery."""
    text = text.strip()
    if len(text) > MAX_RESPONSE_CHARS:
        text = text[:TRUNCATED_LENGTH] + TRUNCATION_MARKER
    return text


def response_filename(channel: str, message_id: str, completed_ms: int) -> str:
    """Outgoing file name for a completed job.

    Heartbeat replies are keyed by message id alone so a repeated heartbeat
    overwrites its previous reply; real channels include the completion time.
    Both ids are reduced to safe tokens so the name stays inside outgoing.
    """
    if channel == HEARTBEAT_CHANNEL:
        return f"{safe_token(message_id)}.json"
    return f"{safe_token(channel)}_{safe_token(message_id)}_{completed_ms}.json"


def build_response(job: Job, text: str, completed_ms: int) -> Response:
    return Response(
        channel=job.channel,
        sender=job.sender,
        message=shape_response(text),
        original_message=job.message,
        timestamp=completed_ms,
        message_id=job.message_id,
    )
