import logging
import os
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)


def scan_path_executables(path_value):
    """Return the set of executable basenames found on a PATH-style value"""
    exes = set()
    for d in (path_value or "").split(os.pathsep):
        if not d:
            continue
        try:
            names = os.listdir(d)
        except OSError:
            continue
        for name in names:
            p = os.path.join(d, name)
            if os.path.isfile(p) and os.access(p, os.X_OK):
                exes.add(name)
    return exes


class TrieNode:
    __slots__ = ("children", "terminal")

    def __init__(self):
        self.children = {}
        self.terminal = False


class CompletionTrie:
    """Prefix tree of command names."""

    def __init__(self, names=()):
        self.root = TrieNode()
        self.size = 0
        for name in names:
            self.insert(name)

    def insert(self, name):
        node = self.root
        for ch in name:
            node = node.children.setdefault(ch, TrieNode())
        if not node.terminal:
            node.terminal = True
            self.size += 1

    def _find(self, prefix):
        node = self.root
        for ch in prefix:
            node = node.children.get(ch)
            if node is None:
                return None
        return node

    def __contains__(self, name):
        node = self._find(name)
        return node is not None and node.terminal

    def __len__(self):
        return self.size

    def matches(self, prefix):
        """All known names starting with `prefix`, sorted"""
        node = self._find(prefix)
        if node is None:
            return []
        found = []
        stack = [(node, prefix)]
        while stack:
            node, text = stack.pop()
            if node.terminal:
                found.append(text)
            for ch, child in node.children.items():
                stack.append((child, text + ch))
        return sorted(found)

    def longest_unique_extension(self, prefix):
        """
        Follow the only possible path below `prefix` for as long as there is
        one, stopping at a name end or a branch.
        Returns: (suffix, matches) with matches the full names under prefix
        """
        node = self._find(prefix)
        if node is None:
            return "", []
        suffix = []
        while not node.terminal and len(node.children) == 1:
            ch, node = next(iter(node.children.items()))
            suffix.append(ch)
        return "".join(suffix), self.matches(prefix)


# Completion outcomes
UNIQUE = "unique"
PARTIAL = "partial"
AMBIGUOUS = "ambiguous"
NONE = "none"


@dataclass
class Completion:
    kind: str
    insert: str = ""
    matches: List[str] = field(default_factory=list)


class Completer:
    """Completes the command word from builtins and executables on PATH."""

    def __init__(self, builtin_names=(), path_func=None):
        self.builtin_names = tuple(builtin_names)
        self.path_func = path_func or (lambda: os.environ.get("PATH", ""))
        self.trie = CompletionTrie(self.builtin_names)

    def refresh(self):
        """Rebuild the index; PATH contents may change between commands"""
        names = scan_path_executables(self.path_func())
        names.update(self.builtin_names)
        self.trie = CompletionTrie(names)
        logger.debug("completion index rebuilt with %d names", len(self.trie))

    def complete(self, buffer):
        if not buffer or any(c.isspace() for c in buffer):
            return Completion(NONE)

        suffix, matches = self.trie.longest_unique_extension(buffer)
        if not matches:
            return Completion(NONE)
        if len(matches) == 1:
            return Completion(UNIQUE, suffix + " ", matches)
        if suffix:
            return Completion(PARTIAL, suffix, matches)
        return Completion(AMBIGUOUS, "", matches)
