import logging

from pipeshell.errors import HistoryFileError

logger = logging.getLogger(__name__)


class History:
    """
    In-memory command history.

    Entries are kept in insertion order and never reordered or removed.
    Lines that came from a history file are remembered so `append_to` only
    ever writes lines typed in this session, and each append target keeps
    its own high-water mark.
    """

    def __init__(self, entries=None):
        self.entries = list(entries or [])
        self._imported = set()
        self._append_marks = {}

    def __len__(self):
        return len(self.entries)

    def __getitem__(self, index):
        return self.entries[index]

    def add(self, line):
        """Record an accepted command line"""
        self.entries.append(line)

    def copy(self):
        clone = History(self.entries)
        clone._imported = set(self._imported)
        clone._append_marks = dict(self._append_marks)
        return clone

    def load(self, path):
        """Append the non-blank lines of a history file"""
        try:
            with open(path, encoding="utf-8") as f:
                lines = [line.rstrip("\r\n") for line in f]
        except FileNotFoundError:
            raise HistoryFileError(path)
        except UnicodeDecodeError:
            raise HistoryFileError(path, "invalid history file")
        except OSError as e:
            raise HistoryFileError(path, e.strerror or str(e))

        for line in lines:
            if line.strip():
                self._imported.add(len(self.entries))
                self.entries.append(line)
        logger.debug("loaded %d history entries from %s", len(lines), path)

    def save(self, path, limit=0):
        """Overwrite a history file with the whole log (or its last `limit` lines)"""
        entries = self.entries[-limit:] if limit and limit > 0 else self.entries
        self._write(path, "w", entries)
        self._append_marks[path] = len(self.entries)

    def append_to(self, path):
        """
        Append the lines entered since the last append to this file.
        Returns: number of lines written
        """
        mark = self._append_marks.get(path, 0)
        new = [line for i, line in enumerate(self.entries[mark:], start=mark)
               if i not in self._imported]
        self._write(path, "a", new)
        self._append_marks[path] = len(self.entries)
        return len(new)

    def _write(self, path, mode, entries):
        try:
            with open(path, mode, encoding="utf-8") as f:
                for line in entries:
                    f.write(line + "\n")
        except OSError as e:
            raise HistoryFileError(path, e.strerror or str(e))
        logger.debug("wrote %d history entries to %s (%s)", len(entries), path, mode)

    def tail(self, count=None):
        """
        Last `count` entries with their 1-based index.
        Returns: list of (index, line)
        """
        numbered = list(enumerate(self.entries, start=1))
        if count is None:
            return numbered
        if count <= 0:
            return []
        return numbered[-count:]

    def format(self, count=None):
        return "".join(f"{i:>5}  {line}\n" for i, line in self.tail(count))
