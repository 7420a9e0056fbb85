"""
Command-line rendering for the audit log with credential arguments masked.
"""
import shlex
from typing import Sequence

# Flags whose following argument carries a credential
SENSITIVE_FLAGS = frozenset({"--password", "--secret", "-p"})
REDACTED = "REDACTED"


def redact_command(command: Sequence[str]) -> str:
    """
    Render a command as a replayable shell line with credential values masked.

    Args:
        command: Command parts, e.g. ["az", "login", "-u", "bob", "-p", "hunter2"]

    Returns:
        Shell-quoted command line with the value after each sensitive flag
        replaced by REDACTED. Never raises.
    """
    try:
        parts = []
        redact_next = False
        for arg in command:
            arg = str(arg)
            if redact_next:
                parts.append(REDACTED)
                redact_next = False
                continue
            parts.append(shlex.quote(arg))
            redact_next = arg in SENSITIVE_FLAGS
        return " ".join(parts)
    except Exception:
        return "<command could not be rendered>"


def has_sensitive_flag(command: Sequence[str]) -> bool:
    """Check whether a command carries any credential argument."""
    try:
        return any(str(arg) in SENSITIVE_FLAGS for arg in command)
    except Exception:
        return True
