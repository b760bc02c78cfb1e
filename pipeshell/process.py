"""
Process handles.

A handle hides whether a command runs as a spawned OS process or as a
builtin on its own thread: both expose stdin/stdout/stderr byte streams,
start() and wait_for_exit(), so the pipeline code never needs to know which
kind it is wiring.
"""

import contextlib
import logging
import os
import subprocess
import threading
from abc import ABC, abstractmethod

import psutil

from pipeshell.errors import ShellError, SpawnError

logger = logging.getLogger(__name__)

PIPE = subprocess.PIPE

# Status reported by a builtin whose reader went away (128 + SIGPIPE)
BROKEN_PIPE_STATUS = 141


def signal_status(code):
    """Map a negative 'killed by signal N' code to the shell's 128 + N"""
    if code is None:
        return 0
    code = int(code)
    return 128 - code if code < 0 else code


class CommandIO:
    """Byte streams handed to a builtin, with text helpers."""

    def __init__(self, stdin, stdout, stderr, owned=True, encoding="utf-8"):
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.owned = owned
        self.encoding = encoding

    def write(self, text):
        self.stdout.write(text.encode(self.encoding))
        self.stdout.flush()

    def error(self, text):
        self.stderr.write(text.encode(self.encoding))
        self.stderr.flush()

    def lines(self):
        if self.stdin is None:
            return
        for raw in self.stdin:
            yield raw.decode(self.encoding, errors="replace")

    def close(self):
        """Close (or just flush, for terminal streams) every stream"""
        for stream in (self.stdout, self.stderr, self.stdin):
            if stream is None:
                continue
            with contextlib.suppress(OSError, ValueError):
                if self.owned:
                    stream.close()
                elif stream is not self.stdin:
                    stream.flush()


class ProcessHandle(ABC):
    """A command that can be started, fed and waited for."""

    name = "?"

    @property
    @abstractmethod
    def stdin(self):
        """Writable stream feeding the command, or None if inherited"""

    @property
    @abstractmethod
    def stdout(self):
        """Readable stream of the command's output, or None if inherited"""

    @property
    @abstractmethod
    def stderr(self):
        """Readable stream of the command's errors, or None if inherited"""

    @abstractmethod
    def start(self):
        pass

    @abstractmethod
    def wait_for_exit(self):
        """Block until the command ends. Returns: exit status"""

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class ExternalProcess(ProcessHandle):
    """
    A program spawned by the OS.

    stdin/stdout/stderr take the usual subprocess values: PIPE for a stream
    the caller pumps, None to inherit the terminal, or an open file.
    """

    def __init__(self, argv, session, executable=None, stdin=PIPE, stdout=PIPE, stderr=PIPE):
        self.argv = list(argv)
        self.name = self.argv[0]
        self.session = session
        self.executable = executable
        self._streams = (stdin, stdout, stderr)
        self.proc = None

    @property
    def stdin(self):
        return self.proc.stdin if self.proc else None

    @property
    def stdout(self):
        return self.proc.stdout if self.proc else None

    @property
    def stderr(self):
        return self.proc.stderr if self.proc else None

    def start(self):
        stdin, stdout, stderr = self._streams
        try:
            self.proc = psutil.Popen(
                self.argv,
                executable=self.executable,
                cwd=self.session.cwd,
                env=self.session.env,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
            )
        except PermissionError:
            raise SpawnError(f"{self.name}: permission denied", 126)
        except FileNotFoundError:
            raise SpawnError(f"{self.name}: command not found", 127)
        except OSError as e:
            raise SpawnError(f"{self.name}: failed to execute: {e.strerror or e}", 126)
        logger.debug("spawned %s (pid %d)", self.name, self.proc.pid)

    def wait_for_exit(self):
        status = signal_status(self.proc.wait())
        logger.debug("%s (pid %d) exited with %d", self.name, self.proc.pid, status)
        return status


class BuiltinProcess(ProcessHandle):
    """
    A builtin running on its own thread, connected through three OS pipes.

    The thread owns the command side of every pipe and closes it when the
    builtin returns, so readers of stdout/stderr always see end of stream.
    """

    def __init__(self, name, func, args, session):
        self.name = name
        self.func = func
        self.args = list(args)
        self.session = session
        self.status = None
        self.thread = None

        in_r, in_w = os.pipe()
        out_r, out_w = os.pipe()
        err_r, err_w = os.pipe()
        self._stdin = os.fdopen(in_w, "wb")
        self._stdout = os.fdopen(out_r, "rb")
        self._stderr = os.fdopen(err_r, "rb")
        self.io = CommandIO(os.fdopen(in_r, "rb"), os.fdopen(out_w, "wb"), os.fdopen(err_w, "wb"))

    @property
    def stdin(self):
        return self._stdin

    @property
    def stdout(self):
        return self._stdout

    @property
    def stderr(self):
        return self._stderr

    def start(self):
        self.thread = threading.Thread(target=self._run, name=f"builtin-{self.name}", daemon=True)
        self.thread.start()

    def _run(self):
        try:
            self.status = run_builtin(self.name, self.func, self.args, self.io, self.session)
        finally:
            self.io.close()

    def wait_for_exit(self):
        self.thread.join()
        logger.debug("builtin %s exited with %s", self.name, self.status)
        return self.status if self.status is not None else 1


def run_builtin(name, func, args, io, session):
    """
    Run builtin logic, turning any failure into a message on its error
    stream and a nonzero status.
    """
    try:
        return func(args, io, session) or 0
    except BrokenPipeError:
        return BROKEN_PIPE_STATUS
    except ShellError as e:
        _report(io, f"{e}\n")
        return e.status
    except Exception as e:
        logger.debug("builtin %s failed", name, exc_info=True)
        _report(io, f"{name}: {e}\n")
        return 1


def _report(io, message):
    with contextlib.suppress(OSError, ValueError):
        io.error(message)


def cleanup_children(timeout=1.0):
    """Terminate child processes still alive when the shell exits"""
    try:
        children = psutil.Process().children(recursive=True)
    except psutil.Error:
        return
    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.terminate()
    gone, alive = psutil.wait_procs(children, timeout=timeout)
    for child in alive:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.kill()
            logger.warning("killed lingering child process %d", child.pid)
    if gone:
        logger.debug("terminated %d child process(es)", len(gone))
