import logging
import os
import sys

from pipeshell import config
from pipeshell.builtin import BUILTINS
from pipeshell.completion import Completer
from pipeshell.errors import HistoryFileError
from pipeshell.executor import execute_line
from pipeshell.lineedit import LineEditor
from pipeshell.process import cleanup_children
from pipeshell.session import ShellSession

logger = logging.getLogger(__name__)


def load_history(session, path):
    """Load the history file at startup, if there is one"""
    if not path:
        return
    try:
        session.history.load(path)
    except HistoryFileError as e:
        if os.path.exists(path):
            print(f"Warning: Could not load history: {e}", file=sys.stderr)
        logger.info("history not loaded: %s", e)


def save_history(session, path):
    if not path:
        return
    try:
        session.history.save(path, limit=config.MAX_HISTORY)
    except HistoryFileError as e:
        print(f"Warning: Could not save history: {e}", file=sys.stderr)


def main_loop(session=None, stdin=None, stdout=None, history_file=None, streams=None):
    """
    Main shell loop. `streams` overrides the (stdin, stdout, stderr) byte
    streams commands run against; by default they use the terminal.
    Returns: exit status of the session
    """
    config.setup_logging()
    session = session or ShellSession.from_environment()
    history_file = history_file or config.HISTORY_FILE
    completer = Completer(BUILTINS, path_func=lambda: session.path)
    editor = LineEditor(session.history, completer, stdin=stdin, out=stdout)

    load_history(session, history_file)
    try:
        while session.running:
            try:
                line = editor.read_line(config.PROMPT)
            except KeyboardInterrupt:
                editor.out.write("\n")
                continue
            if line is None:
                break
            if not line.strip():
                continue

            session.history.add(line)
            try:
                session.last_status = execute_line(line, session, streams)
            except KeyboardInterrupt:
                editor.out.write("\n")
                session.last_status = 130
    finally:
        save_history(session, history_file)
        cleanup_children()

    return session.exit_code


def main():
    sys.exit(main_loop())


if __name__ == "__main__":
    main()
