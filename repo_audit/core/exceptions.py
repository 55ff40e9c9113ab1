from typing import List, Optional


class RepoAuditError(Exception):
    """Base class for errors raised inside the audit pipeline."""


class PolicyConfigurationError(RepoAuditError):
    """A license policy data file is missing or malformed."""


class CommandError(RepoAuditError):
    """An external build tool command could not complete."""

    def __init__(self, message: str, args: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.command = list(args or [])


class CommandTimeoutError(CommandError):
    """The command did not finish within its timeout and was killed."""

    def __init__(self, args: List[str], timeout: float):
        super().__init__(
            f"Command '{' '.join(args)}' timed out after {timeout:g} seconds", args
        )
        self.timeout = timeout


class OutputLimitExceededError(CommandError):
    """The command produced more output than the configured buffer allows."""

    def __init__(self, args: List[str], limit: int):
        super().__init__(
            f"Command '{' '.join(args)}' exceeded the output buffer of {limit} bytes", args
        )
        self.limit = limit


class CommandFailedError(CommandError):
    """The command exited with a non-zero status or could not be started."""

    def __init__(
        self,
        args: List[str],
        returncode: Optional[int],
        stdout: str = "",
        stderr: str = "",
        reason: Optional[str] = None,
    ):
        message = reason or f"Command '{' '.join(args)}' exited with status {returncode}"
        super().__init__(message, args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
