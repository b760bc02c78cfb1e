"""
Raw-terminal line editor.

Keystrokes are fed one character at a time into a small state machine that
keeps an edit buffer, echoes or redraws it, walks the history and asks the
completer for Tab completions. The terminal is switched to cbreak mode only
for the duration of one line read.
"""

import codecs
import contextlib
import logging
import os
import sys
import termios
import tty
from dataclasses import dataclass
from enum import Enum

from pipeshell import completion

logger = logging.getLogger(__name__)

ESC = "\x1b"
BELL = "\a"
CTRL_C = "\x03"
CTRL_D = "\x04"
BACKSPACES = ("\x7f", "\b")
ENTER = ("\r", "\n")
TAB = "\t"
CLEAR_LINE = "\r" + ESC + "[K"


class State(Enum):
    IDLE = "idle"
    EDITING = "editing"
    AWAITING_ESCAPE = "awaiting-escape"
    ACCEPTED = "accepted"
    ABORTED = "aborted"
    EOF = "eof"


DONE = (State.ACCEPTED, State.ABORTED, State.EOF)


@contextlib.contextmanager
def raw_mode(fd):
    """Put the terminal in cbreak mode, always restoring the old settings"""
    saved = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd, termios.TCSANOW)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class EditBuffer:
    """Characters of the line being composed plus the cursor position."""

    def __init__(self, text=""):
        self.chars = list(text)
        self.cursor = len(self.chars)

    def __len__(self):
        return len(self.chars)

    @property
    def text(self):
        return "".join(self.chars)

    @property
    def at_end(self):
        return self.cursor == len(self.chars)

    def insert(self, s):
        self.chars[self.cursor:self.cursor] = list(s)
        self.cursor += len(s)

    def backspace(self):
        if self.cursor == 0:
            return False
        del self.chars[self.cursor - 1]
        self.cursor -= 1
        return True

    def move_left(self):
        if self.cursor == 0:
            return False
        self.cursor -= 1
        return True

    def move_right(self):
        if self.at_end:
            return False
        self.cursor += 1
        return True

    def home(self):
        self.cursor = 0

    def end(self):
        self.cursor = len(self.chars)

    def replace(self, text):
        self.chars = list(text)
        self.cursor = len(self.chars)

    def clear(self):
        self.replace("")


@dataclass
class HistoryCursor:
    """Position while browsing history; index == len(history) means past the end."""
    index: int
    saved_line: str = ""


class LineEditor:
    """
    Reads one line at a time from a terminal.

    `read_line` owns the terminal; `feed` is the state machine and can be
    driven directly with characters.
    """

    def __init__(self, history, completer=None, stdin=None, out=None):
        self.history = history
        self.completer = completer
        self.stdin = stdin or sys.stdin
        self.out = out or sys.stdout
        self.prompt = ""
        self.buffer = EditBuffer()
        self.state = State.IDLE
        self.cursor = HistoryCursor(len(history))
        self._escape = ""
        self._tab_pending = False

    def _write(self, s):
        self.out.write(s)
        self.out.flush()

    def begin(self, prompt=""):
        """Start composing a new line"""
        self.prompt = prompt
        self.buffer = EditBuffer()
        self.cursor = HistoryCursor(len(self.history))
        self.state = State.EDITING
        self._escape = ""
        self._tab_pending = False
        if self.completer is not None:
            self.completer.refresh()
        self._write(prompt)

    def result(self):
        """Finished line, "" for an aborted one, None at end of input"""
        if self.state == State.EOF:
            return None
        if self.state == State.ABORTED:
            return ""
        return self.buffer.text

    def _terminal_fd(self):
        try:
            fd = self.stdin.fileno()
        except (AttributeError, OSError, ValueError):
            return None
        return fd if os.isatty(fd) else None

    def read_line(self, prompt=""):
        """Read one line; None means end of input"""
        fd = self._terminal_fd()
        if fd is None:
            return self._read_cooked(prompt)

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        with raw_mode(fd):
            self.begin(prompt)
            while self.state not in DONE:
                try:
                    data = os.read(fd, 1)
                except KeyboardInterrupt:
                    self.feed(CTRL_C)
                    continue
                if not data:
                    self.feed("\n" if self.buffer else CTRL_D)
                    continue
                for ch in decoder.decode(data):
                    self.feed(ch)
                    if self.state in DONE:
                        break
        return self.result()

    def _read_cooked(self, prompt):
        """Plain line read for piped or redirected input"""
        self._write(prompt)
        line = self.stdin.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    def feed(self, ch):
        """Process one keystroke"""
        if self.state == State.IDLE:
            self.state = State.EDITING
        if ch == CTRL_C:
            self._write("^C\n")
            self.buffer.clear()
            self.state = State.ABORTED
            return
        if self.state == State.AWAITING_ESCAPE:
            self._feed_escape(ch)
            return

        if ch != TAB:
            self._tab_pending = False

        if ch in ENTER:
            self._write("\n")
            self.state = State.ACCEPTED
        elif ch == CTRL_D:
            if not self.buffer:
                self._write("\n")
                self.state = State.EOF
        elif ch in BACKSPACES:
            self._backspace()
        elif ch == TAB:
            self._complete()
        elif ch == ESC:
            self._escape = ""
            self.state = State.AWAITING_ESCAPE
        elif ch.isprintable():
            self._insert(ch)
        else:
            logger.debug("ignoring control character %r", ch)

    def _feed_escape(self, ch):
        seq = self._escape
        if not seq:
            if ch in "[O":
                self._escape = ch
                return
            # Alt+key or a lone ESC: drop it
            self.state = State.EDITING
            return

        if ch.isdigit() or ch == ";":
            self._escape += ch
            return

        self.state = State.EDITING
        self._escape = ""
        if len(seq) > 1:
            # parameterised sequence (Delete, PageUp, Ctrl+arrow ...)
            logger.debug("discarding escape sequence %r", seq + ch)
            return
        action = {
            "A": self._history_up,
            "B": self._history_down,
            "C": self._cursor_right,
            "D": self._cursor_left,
            "H": self._cursor_home,
            "F": self._cursor_end,
        }.get(ch)
        if action is None:
            logger.debug("discarding escape sequence %r", seq + ch)
            return
        action()

    def _insert(self, s):
        at_end = self.buffer.at_end
        self.buffer.insert(s)
        if at_end:
            self._write(s)
        else:
            self.redraw()

    def _backspace(self):
        at_end = self.buffer.at_end
        if not self.buffer.backspace():
            return
        if at_end:
            self._write("\b \b")
        else:
            self.redraw()

    def _cursor_left(self):
        if self.buffer.move_left():
            self._write("\b")

    def _cursor_right(self):
        if self.buffer.move_right():
            self._write(ESC + "[C")

    def _cursor_home(self):
        self.buffer.home()
        self.redraw()

    def _cursor_end(self):
        self.buffer.end()
        self.redraw()

    def _history_up(self):
        if self.cursor.index <= 0:
            self._write(BELL)
            return
        if self.cursor.index >= len(self.history):
            self.cursor.saved_line = self.buffer.text
        self.cursor.index -= 1
        self.buffer.replace(self.history[self.cursor.index])
        self.redraw()

    def _history_down(self):
        if self.cursor.index >= len(self.history):
            self._write(BELL)
            return
        self.cursor.index += 1
        if self.cursor.index >= len(self.history):
            self.buffer.replace(self.cursor.saved_line)
        else:
            self.buffer.replace(self.history[self.cursor.index])
        self.redraw()

    def _complete(self):
        if self.completer is None or not self.buffer.at_end:
            self._write(BELL)
            return

        result = self.completer.complete(self.buffer.text)
        if result.kind in (completion.UNIQUE, completion.PARTIAL):
            self._tab_pending = False
            self._insert(result.insert)
        elif result.kind == completion.AMBIGUOUS and self._tab_pending:
            self._tab_pending = False
            self._write("\n" + "  ".join(result.matches) + "\n")
            self.redraw()
        elif result.kind == completion.AMBIGUOUS:
            self._tab_pending = True
            self._write(BELL)
        else:
            self._write(BELL)

    def redraw(self):
        """Erase the rendered line and print prompt and buffer again"""
        text = self.buffer.text
        self._write(CLEAR_LINE + self.prompt + text)
        back = len(text) - self.buffer.cursor
        if back:
            self._write(f"{ESC}[{back}D")
