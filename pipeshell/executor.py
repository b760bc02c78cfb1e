import contextlib
import logging
import os
import sys
import threading

from pipeshell import config
from pipeshell.builtin import BUILTINS
from pipeshell.errors import CommandNotFoundError, RedirectionError, ShellError, SpawnError
from pipeshell.parser import parse_line
from pipeshell.process import PIPE, BuiltinProcess, CommandIO, ExternalProcess, run_builtin

logger = logging.getLogger(__name__)

PROGRAM = "pipeshell"


def _resolve_streams(streams):
    """
    (stdin, stdout, stderr) binary streams for a command line.
    stdin None means the terminal, which external commands inherit.
    """
    if streams is None:
        return None, sys.stdout.buffer, sys.stderr.buffer
    return streams


def _report(stream, message):
    with contextlib.suppress(OSError, ValueError):
        stream.write((message + "\n").encode("utf-8"))
        stream.flush()


def pump(src, dst, close_dst, buffer_size=None):
    """
    Copy bytes from src to dst until end of stream.
    src is always closed at the end; dst only when close_dst is set.
    Returns: number of bytes copied
    """
    size = buffer_size or config.PUMP_BUFFER_SIZE
    read = getattr(src, "read1", src.read)
    total = 0
    try:
        while True:
            chunk = read(size)
            if not chunk:
                break
            dst.write(chunk)
            dst.flush()
            total += len(chunk)
    except BrokenPipeError:
        logger.debug("pump stopped: reader went away after %d bytes", total)
    except (OSError, ValueError) as e:
        logger.debug("pump stopped after %d bytes: %s", total, e)
    finally:
        with contextlib.suppress(OSError, ValueError):
            src.close()
        if close_dst:
            with contextlib.suppress(OSError, ValueError):
                dst.close()
    return total


def start_pump(src, dst, close_dst, name="pump"):
    t = threading.Thread(target=pump, args=(src, dst, close_dst), name=name, daemon=True)
    t.start()
    return t


def failing_command(message, status):
    """Builtin logic that only reports an error"""
    def run(args, io, session):
        io.error(message + "\n")
        return status
    return run


def make_handle(argv, session, inherit_stdin=False):
    """
    Build the process handle for one pipeline segment.
    Unknown commands get a handle that reports the error, so the rest of
    the pipeline still runs.
    """
    name = argv[0]
    func = BUILTINS.get(name)
    if func is not None:
        # builtins in a pipeline behave like a subshell
        return BuiltinProcess(name, func, argv[1:], session.fork())

    executable = session.which(name)
    if executable is None:
        err = CommandNotFoundError(name)
        return BuiltinProcess(name, failing_command(err.message, err.status), [], session)
    return ExternalProcess(argv, session, executable=executable,
                           stdin=None if inherit_stdin else PIPE)


def run_pipeline(segments, session, streams=None):
    """
    Run `a | b | c`: every segment is started first, then the pumps are
    attached. Returns: exit status of the last segment
    """
    stdin, stdout, stderr = _resolve_streams(streams)
    logger.debug("pipeline: %s", " | ".join(argv[0] for argv in segments))

    handles = []
    for i, argv in enumerate(segments):
        handle = make_handle(argv, session, inherit_stdin=(i == 0 and stdin is None))
        try:
            handle.start()
        except SpawnError as e:
            handle = BuiltinProcess(argv[0], failing_command(e.message, e.status), [], session)
            handle.start()
        handles.append(handle)

    pumps = []
    first = handles[0]
    if first.stdin is not None:
        if stdin is not None:
            pumps.append(start_pump(stdin, first.stdin, True, "pump-stdin"))
        else:
            # a builtin must not block on the terminal
            first.stdin.close()

    last = len(handles) - 1
    for i, handle in enumerate(handles):
        if i < last:
            pumps.append(start_pump(handle.stdout, handles[i + 1].stdin, True, f"pump-{i}"))
        else:
            pumps.append(start_pump(handle.stdout, stdout, False, f"pump-{i}-out"))
        pumps.append(start_pump(handle.stderr, stderr, False, f"pump-{i}-err"))

    statuses = [handle.wait_for_exit() for handle in handles]
    for t in pumps:
        t.join()
    logger.debug("pipeline statuses: %s", statuses)
    return statuses[-1]


def open_redirect(redirection, session):
    """Open a redirection target, creating missing parent directories"""
    path = session.resolve(redirection.path)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        return open(path, redirection.mode)
    except OSError as e:
        raise RedirectionError(f"{redirection.path}: {e.strerror or e}")


def _child_stream(stream, terminal):
    """How to hand a stream to a spawned process: inherit, pass the file, or pump"""
    if stream is None or stream is terminal:
        return None
    try:
        stream.fileno()
    except (AttributeError, OSError, ValueError):
        return PIPE
    return stream


def run_command(argv, redirections, session, streams=None):
    """
    Run one command without pumps. Redirected streams go to their files,
    the other streams stay on the terminal.
    """
    stdin, stdout, stderr = _resolve_streams(streams)
    opened = []
    try:
        for redirection in redirections:
            f = open_redirect(redirection, session)
            opened.append(f)
            if redirection.stream == "stderr":
                stderr = f
            else:
                stdout = f

        name = argv[0]
        func = BUILTINS.get(name)
        if func is not None:
            io = CommandIO(stdin if stdin is not None else sys.stdin.buffer, stdout, stderr, owned=False)
            try:
                return run_builtin(name, func, argv[1:], io, session)
            finally:
                io.close()

        executable = session.which(name)
        if executable is None:
            err = CommandNotFoundError(name)
            _report(stderr, err.message)
            return err.status
        return _run_external(argv, executable, session, stdin, stdout, stderr)
    finally:
        for f in opened:
            with contextlib.suppress(OSError):
                f.close()


def _run_external(argv, executable, session, stdin, stdout, stderr):
    child_out = _child_stream(stdout, sys.stdout.buffer)
    child_err = _child_stream(stderr, sys.stderr.buffer)
    child_in = _child_stream(stdin, None)
    for stream in (stdout, stderr):
        with contextlib.suppress(OSError, ValueError):
            stream.flush()

    handle = ExternalProcess(argv, session, executable=executable,
                             stdin=child_in, stdout=child_out, stderr=child_err)
    try:
        handle.start()
    except SpawnError as e:
        _report(stderr, e.message)
        return e.status

    pumps = []
    if child_in is PIPE:
        pumps.append(start_pump(stdin, handle.stdin, True, "pump-stdin"))
    if child_out is PIPE:
        pumps.append(start_pump(handle.stdout, stdout, False, "pump-out"))
    if child_err is PIPE:
        pumps.append(start_pump(handle.stderr, stderr, False, "pump-err"))
    status = handle.wait_for_exit()
    for t in pumps:
        t.join()
    return status


def execute_line(line, session, streams=None):
    """
    Parse and run one command line.
    Returns: exit status
    """
    try:
        parsed = parse_line(line)
        if not parsed.segments:
            return 0
        if parsed.is_pipeline:
            return run_pipeline(parsed.segments, session, streams)
        return run_command(parsed.segments[0], parsed.redirections, session, streams)
    except ShellError as e:
        _report(_resolve_streams(streams)[2], f"{PROGRAM}: {e}")
        return e.status
