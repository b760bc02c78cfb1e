from dataclasses import dataclass, field
from typing import List

from pipeshell.errors import ParseError

# Characters a backslash can escape inside double quotes
DOUBLE_QUOTE_ESCAPES = ('$', '`', '"', '\\', '\n')

REDIRECT_OPERATORS = {
    '>': ('stdout', False),
    '1>': ('stdout', False),
    '>>': ('stdout', True),
    '1>>': ('stdout', True),
    '2>': ('stderr', False),
    '2>>': ('stderr', True),
}


@dataclass
class Word:
    """A scanned token. `quoted` is set if any part of it was quoted or escaped."""
    text: str
    quoted: bool = False


@dataclass
class Redirection:
    """Send one stream of a command to a file."""
    path: str
    stream: str = 'stdout'  # "stdout" or "stderr"
    append: bool = False

    @property
    def mode(self):
        return 'ab' if self.append else 'wb'


@dataclass
class ParsedLine:
    """A command line: one argv per pipeline segment plus redirections."""
    segments: List[List[str]] = field(default_factory=list)
    redirections: List[Redirection] = field(default_factory=list)

    @property
    def is_pipeline(self):
        return len(self.segments) > 1


def scan(line, split_pipes=False):
    """
    Scan a command line into segments of words.

    Quotes are never part of a word; an unterminated quote is closed at end
    of input and a dangling backslash is kept literally. With split_pipes,
    an unquoted '|' ends the current segment. Empty segments are dropped.
    """
    segments = []
    words = []
    buf = []
    quoted = False
    in_single = in_double = escape = False

    def flush_word():
        nonlocal quoted
        if buf:
            words.append(Word(''.join(buf), quoted))
            buf.clear()
        quoted = False

    def flush_segment():
        flush_word()
        if words:
            segments.append(list(words))
            words.clear()

    for c in line:
        if escape:
            if in_single:
                buf.append('\\')
                buf.append(c)
            elif in_double:
                if c not in DOUBLE_QUOTE_ESCAPES:
                    buf.append('\\')
                buf.append(c)
            else:
                buf.append(c)
            quoted = True
            escape = False
        elif c == '\\':
            escape = True
        elif c == "'" and not in_double:
            in_single = not in_single
            quoted = True
        elif c == '"' and not in_single:
            in_double = not in_double
            quoted = True
        elif in_single or in_double:
            buf.append(c)
        elif c.isspace():
            flush_word()
        elif c == '|' and split_pipes:
            flush_segment()
        else:
            buf.append(c)

    if escape:
        buf.append('\\')
    flush_segment()
    return segments


def tokenize(line):
    """Split one command line into arguments. Empty input gives []."""
    return [w.text for segment in scan(line) for w in segment]


def split_pipeline(line):
    """
    Split a line on unquoted '|' into argument vectors.
    Fewer than two segments means the line is not a pipeline.
    """
    return [[w.text for w in segment] for segment in scan(line, split_pipes=True)]


def parse_redirections(words):
    """
    Strip redirection operators and their targets from a segment.
    Returns: (argv, redirections). A later operator for a stream wins.
    """
    argv, targets = [], {}
    i = 0
    while i < len(words):
        word = words[i]
        op = REDIRECT_OPERATORS.get(word.text) if not word.quoted else None
        if op is None:
            argv.append(word.text)
            i += 1
            continue
        if i + 1 >= len(words):
            raise ParseError("syntax error near unexpected token `newline'")
        stream, append = op
        targets[stream] = Redirection(words[i + 1].text, stream, append)
        i += 2
    return argv, list(targets.values())


def has_redirection(words):
    return any(not w.quoted and w.text in REDIRECT_OPERATORS for w in words)


def parse_line(line):
    """
    Parse a full command line.
    Returns: ParsedLine (no segments for a blank line)
    """
    segments = scan(line, split_pipes=True)
    parsed = ParsedLine()
    if len(segments) > 1:
        if any(has_redirection(seg) for seg in segments):
            raise ParseError("redirection is not supported inside pipelines")
        parsed.segments = [[w.text for w in seg] for seg in segments]
        return parsed

    for seg in segments:
        argv, redirections = parse_redirections(seg)
        if not argv:
            raise ParseError("syntax error: missing command before redirection")
        parsed.segments.append(argv)
        parsed.redirections = redirections
    return parsed
