import io
import sys
import threading

import pytest

from pipeshell import builtin
from pipeshell.executor import execute_line, pump, run_command, run_pipeline
from pipeshell.parser import Redirection

PYTHON = sys.executable

CAT = [PYTHON, "-c", "import sys; sys.stdout.buffer.write(sys.stdin.buffer.read())"]


def upper(args, io, session):
    for line in io.lines():
        io.write(line.upper())
    return 0


class Sink(io.BytesIO):
    """BytesIO that records close() but stays readable."""

    close_calls = 0

    def close(self):
        self.close_calls += 1


@pytest.fixture
def with_upper(monkeypatch):
    monkeypatch.setitem(builtin.BUILTINS, "upper", upper)


def test_pump_copies_everything_and_closes():
    data = bytes(range(256)) * 200
    src = io.BufferedReader(io.BytesIO(data))
    dst = Sink()
    assert pump(src, dst, close_dst=True, buffer_size=1000) == len(data)
    assert dst.getvalue() == data
    assert src.closed
    assert dst.close_calls == 1


def test_pump_leaves_terminal_sink_open():
    dst = io.BytesIO()
    pump(io.BytesIO(b"abc"), dst, close_dst=False)
    assert not dst.closed
    assert dst.getvalue() == b"abc"


def test_three_stage_pipeline_through_builtin(session, streams, with_upper):
    # several pump buffers worth of data, every byte accounted for
    produce = [PYTHON, "-c", "import sys\nfor i in range(3000): sys.stdout.write('line %05d abc\\n' % i)"]
    status = run_pipeline([produce, ["upper"], CAT], session, streams)
    _, out, err = streams
    expected = "".join("LINE %05d ABC\n" % i for i in range(3000)).encode()
    assert status == 0
    assert len(expected) > 5 * 8192
    assert out.getvalue() == expected
    assert err.getvalue() == b""


def test_pipeline_status_is_last_segment(session, streams):
    status = run_pipeline([[PYTHON, "-c", "import sys; sys.exit(3)"], ["echo", "x"]], session, streams)
    assert status == 0
    status = run_pipeline([["echo", "x"], [PYTHON, "-c", "import sys; sys.exit(5)"]], session, streams)
    assert status == 5


def test_pipeline_stderr_always_reaches_terminal(session, streams):
    noisy = [PYTHON, "-c", "import sys; sys.stderr.write('warn\\n'); print('data')"]
    run_pipeline([noisy, CAT], session, streams)
    _, out, err = streams
    assert out.getvalue() == b"data\n"
    assert err.getvalue() == b"warn\n"


def test_pipeline_feeds_given_stdin(session, with_upper):
    out, err = io.BytesIO(), io.BytesIO()
    status = run_pipeline([["upper"], CAT], session, (io.BytesIO(b"abc\n"), out, err))
    assert status == 0
    assert out.getvalue() == b"ABC\n"


def test_first_builtin_does_not_wait_for_terminal(session, streams, with_upper):
    done = []

    def run():
        done.append(run_pipeline([["upper"], ["echo", "ok"]], session, streams))

    t = threading.Thread(target=run, daemon=True)
    t.start()
    t.join(10)
    assert done == [0]
    assert streams[1].getvalue() == b"ok\n"


def test_pipeline_with_unknown_command(session, streams):
    status = run_pipeline([["echo", "hi"], ["zzznotacommand"]], session, streams)
    assert status == 127
    assert streams[2].getvalue() == b"zzznotacommand: command not found\n"


def test_early_exit_downstream_does_not_hang(session, streams):
    endless = [PYTHON, "-c", "import sys\nwhile True: sys.stdout.write('y\\n')"]
    head = [PYTHON, "-c", "import sys; print(sys.stdin.readline().strip())"]
    status = run_pipeline([endless, head], session, streams)
    assert status == 0
    assert streams[1].getvalue() == b"y\n"


def test_pipeline_builtins_do_not_change_shell_state(session, streams, tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    run_pipeline([["cd", "sub"], ["exit", "4"]], session, streams)
    assert session.cwd == str(tmp_path)
    assert session.running


def test_redirect_creates_parent_dirs_and_appends(session, streams, tmp_path):
    target = tmp_path / "x" / "y.txt"
    assert execute_line(f"echo hi > {target}", session, streams) == 0
    assert target.read_text() == "hi\n"
    assert execute_line(f"echo hi >> {target}", session, streams) == 0
    assert target.read_text() == "hi\nhi\n"
    assert streams[1].getvalue() == b""


def test_redirect_relative_to_session_cwd(session, streams, tmp_path):
    execute_line("echo a 1> out.txt", session, streams)
    assert (tmp_path / "out.txt").read_text() == "a\n"


def test_redirect_external_stdout_and_stderr(session, streams, tmp_path, py):
    line = py("import sys; print('out'); sys.stderr.write('err\\n')") + " > o.txt 2>> e.txt"
    assert execute_line(line, session, streams) == 0
    execute_line(line, session, streams)
    assert (tmp_path / "o.txt").read_text() == "out\n"
    assert (tmp_path / "e.txt").read_text() == "err\nerr\n"


def test_stderr_redirect_leaves_stdout_on_terminal(session, streams, tmp_path, py):
    line = py("import sys; print('out'); sys.stderr.write('bad')") + " 2> e.txt"
    execute_line(line, session, streams)
    assert streams[1].getvalue() == b"out\n"
    assert (tmp_path / "e.txt").read_text() == "bad"


def test_unknown_command_honours_stderr_redirect(session, streams, tmp_path):
    assert execute_line("zzznotacommand 2> e.txt", session, streams) == 127
    assert (tmp_path / "e.txt").read_text() == "zzznotacommand: command not found\n"
    assert streams[2].getvalue() == b""


def test_unknown_command(session, streams):
    assert execute_line("zzznotacommand", session, streams) == 127
    assert streams[2].getvalue() == b"zzznotacommand: command not found\n"


def test_redirect_open_failure(session, streams, tmp_path):
    (tmp_path / "file").write_text("")
    status = execute_line("echo hi > file/inside.txt", session, streams)
    assert status == 1
    assert streams[2].getvalue().startswith(b"pipeshell: file/inside.txt: ")


def test_parse_error_is_reported(session, streams):
    assert execute_line("echo >", session, streams) == 2
    assert b"syntax error" in streams[2].getvalue()


def test_blank_and_pipe_only_lines(session, streams):
    assert execute_line("", session, streams) == 0
    assert execute_line(" | ", session, streams) == 0


def test_run_command_builtin_mutates_session(session, streams, tmp_path):
    (tmp_path / "d").mkdir()
    assert run_command(["cd", "d"], [], session, streams) == 0
    assert session.cwd == str(tmp_path / "d")


def test_run_command_external_exit_status(session, streams):
    assert run_command([PYTHON, "-c", "import sys; sys.exit(7)"], [], session, streams) == 7


def test_run_command_builtin_stderr_redirect(session, streams, tmp_path):
    status = run_command(["cd", "nowhere"], [Redirection("err.log", "stderr")], session, streams)
    assert status == 1
    assert (tmp_path / "err.log").read_text() == "cd: nowhere: No such file or directory\n"
