"""
Shell error types.

Every error carries the exit status the read loop reports for it. Errors are
raised where they are detected and turned into a one-line message by the
executor; none of them ends the shell.
"""


class ShellError(Exception):
    """Base class for reportable shell errors."""

    status = 1

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def __str__(self):
        return self.message


class ParseError(ShellError):
    """Malformed command line (missing redirection target, ...)."""

    status = 2


class CommandNotFoundError(ShellError):
    """Name is neither a builtin nor an executable on PATH."""

    status = 127

    def __init__(self, name):
        super().__init__(f"{name}: command not found")
        self.name = name


class RedirectionError(ShellError):
    """A redirection target could not be opened."""

    status = 1


class SpawnError(ShellError):
    """The OS refused to start an external command."""

    status = 126


class HistoryFileError(ShellError):
    """A history file could not be read or written."""

    status = 1

    def __init__(self, path, reason="No such file or directory"):
        super().__init__(f"history: {path}: {reason}")
        self.path = path
        self.reason = reason
