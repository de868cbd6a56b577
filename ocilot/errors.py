"""Error taxonomy for ocilot.

Three kinds of failure are distinguished:

- InvalidInputError: caller-supplied data is unusable. Fixable by the user.
- UnexpectedError: an external system (filesystem, registry, encoding) failed.
- BugError: an internal invariant was violated.

Each error carries a stable string code for programmatic handling.
"""

from __future__ import annotations

import hashlib

# Exit codes for unexpected failures are spread over this range
EXIT_CODE_BASE = 30
EXIT_CODE_SPAN = 226

# Exit code for ordinary user errors
INVALID_INPUT_EXIT_CODE = 1


class OcilotError(Exception):
    """Base error for all ocilot operations."""

    default_code = "error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize OcilotError.

        Args:
            message: Human-readable error description.
            code: Error code for structured error handling.
            cause: Optional underlying exception.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.cause = cause


class InvalidInputError(OcilotError):
    """Raised when caller-supplied data cannot be used."""

    default_code = "invalid_input"

    def __str__(self) -> str:
        return f"invalid input: {self.message}"


class UnexpectedError(OcilotError):
    """Raised when an I/O, network or serialization step fails."""

    default_code = "unexpected"

    def __str__(self) -> str:
        return f"unexpected: {self.message}"


class BugError(OcilotError):
    """Raised when an internal invariant is violated."""

    default_code = "bug"

    def __str__(self) -> str:
        return f"bug: {self.message}"


def exit_code_for(error: BaseException) -> int:
    """Map an error to a process exit code.

    Invalid input is an ordinary user error. Anything else exits with a
    code in 30-255 derived from the rendered message, so identical
    failures always produce the same code.

    Args:
        error: The failure that ended the invocation.

    Returns:
        Process exit code.
    """
    if isinstance(error, InvalidInputError):
        return INVALID_INPUT_EXIT_CODE
    digest = hashlib.sha256(str(error).encode("utf-8")).hexdigest()
    return EXIT_CODE_BASE + int(digest, 16) % EXIT_CODE_SPAN


__all__ = [
    "BugError",
    "EXIT_CODE_BASE",
    "EXIT_CODE_SPAN",
    "INVALID_INPUT_EXIT_CODE",
    "InvalidInputError",
    "OcilotError",
    "UnexpectedError",
    "exit_code_for",
]
