# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Run the external conversational agent inside a session directory.

The agent keeps its conversation state in its working directory; passing
``-c`` asks it to continue that conversation instead of starting fresh.
No timeout is applied to agent runs.
"""

import logging
import subprocess
import tempfile
from pathlib import Path

from tinyclaw import config

log = logging.getLogger(__name__)

MAX_OUTPUT_BYTES = 10 * 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024
STDERR_TAIL_CHARS = 500
FALLBACK_RESPONSE = "Sorry, I encountered an error processing your request."


class AgentError(RuntimeError):
    """The agent could not produce a reply."""


def build_command(
    prompt: str, continuation: bool, model: str | None = None, command: str | None = None
) -> list[str]:
    cmd = [command or config.AGENT_COMMAND, "--dangerously-skip-permissions"]
    if model:
        cmd += ["--model", model]
    if continuation:
        cmd.append("-c")
    cmd += ["-p", prompt]
    return cmd


def run_agent(
    session_dir: Path,
    prompt: str,
    continuation: bool,
    model: str | None = None,
    max_output: int = MAX_OUTPUT_BYTES,
) -> str:
    """Run the agent and return its stdout.

    Raises AgentError on spawn failure, non-zero exit, or output larger
    than ``max_output`` bytes (the process is killed, not truncated).
    """
    cmd = build_command(prompt, continuation, model)
    with tempfile.TemporaryFile() as stderr_file:
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(session_dir),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
            )
        except OSError as e:
            raise AgentError(f"failed to start {cmd[0]}: {e}") from e

        chunks: list[bytes] = []
        total = 0
        with proc:
            while True:
                chunk = proc.stdout.read(READ_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_output:
                    proc.kill()
                    proc.wait()
                    raise AgentError(f"output exceeded {max_output} bytes")
                chunks.append(chunk)
            returncode = proc.wait()

        if returncode != 0:
            stderr_file.seek(0)
            stderr = stderr_file.read().decode("utf-8", errors="replace").strip()
            raise AgentError(f"exit code {returncode}: {stderr[-STDERR_TAIL_CHARS:]}")

    return b"".join(chunks).decode("utf-8", errors="replace")


def invoke(session_dir: Path, prompt: str, continuation: bool, model: str | None = None) -> str:
    """Run the agent, substituting the fallback reply if it fails."""
    try:
        return run_agent(session_dir, prompt, continuation, model)
    except AgentError as e:
        log.error(f"Agent error: {e}")
        return FALLBACK_RESPONSE
