"""Error types raised while assembling an input, plus user-facing classification."""

import asyncio
from typing import Optional

import httpx


# ════════════════════════════════════════════════════════
# Exception hierarchy. Callers catch by type; the CLI
# turns any of them into a one-line message.
# ════════════════════════════════════════════════════════

class ParleyError(Exception):
    """Base class for all input assembly errors."""
    pass

class InvalidMediaTypeError(ParleyError):
    """Media file extension has no known MIME type."""

    def __init__(self, path: str = ""):
        self.path = path
        super().__init__("Unexpected media type")

class CommandFailedError(ParleyError):
    """Shell command reference exited unsuccessfully."""

    def __init__(self, command: str, output: str):
        self.command = command
        self.output = output
        super().__init__(f"Failed to run `{command}`\n{output}")

class LoadError(ParleyError):
    """A local file or remote URL could not be read or parsed."""

    def __init__(self, message: str, reference: Optional[str] = None):
        self.reference = reference
        super().__init__(message)

class EmptySentinelError(ParleyError):
    """`%%` was requested but there is nothing to reuse."""

    def __init__(self):
        super().__init__("No last reply found")

class CapabilityMismatchError(ParleyError):
    """Input carries media but the model cannot see images."""
    pass

class TokenLimitExceededError(ParleyError):
    """Rendered messages exceed the model's input token budget."""

    def __init__(self, estimated: int, limit: int):
        self.estimated = estimated
        self.limit = limit
        super().__init__(
            f"Exceed max_input_tokens limit ({estimated} > {limit}). "
            f"Reduce the input or attach fewer files."
        )


class InputAborted(Exception):
    """Loading was cancelled by the user. Not an error: no input is produced."""

    def __init__(self):
        super().__init__("Aborted")


def describe_error(e: BaseException) -> str:
    """Classify any exception into a short user-facing message.

    Typed errors carry their own message; transport errors from remote
    fetches are translated; anything else names the exception type.
    """
    if isinstance(e, InputAborted):
        return "Aborted."

    # 1: Typed input errors carry their own message
    if isinstance(e, CapabilityMismatchError):
        return str(e)
    if isinstance(e, LoadError):
        cause = e.__cause__
        if cause is not None:
            return f"{e}: {cause}"
        return str(e)
    if isinstance(e, ParleyError):
        return str(e)

    # 2: httpx HTTP status errors (remote fetch)
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if code == 404:
            return "Remote resource not found (HTTP 404)."
        if code in (401, 403):
            return f"Access to remote resource denied (HTTP {code})."
        if 500 <= code < 600:
            return "Remote server is having issues. Please try again later."
        return f"Remote server returned HTTP {code}."

    # 3: Network / timeout errors
    if isinstance(e, httpx.ConnectError):
        return "Cannot connect to remote host. Please check connectivity and try again."
    if isinstance(e, (httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout, httpx.ConnectTimeout)):
        return "Request timed out. Please try again."
    if isinstance(e, asyncio.TimeoutError):
        return "Request timed out. Please try again."

    # 4: Filesystem
    if isinstance(e, FileNotFoundError):
        return f"File not found: {e.filename}"
    if isinstance(e, PermissionError):
        return f"Permission denied: {e.filename}"

    # 5: Fallback with the type name
    type_name = type(e).__name__
    return f"Something went wrong ({type_name}). Run with --debug for details."
