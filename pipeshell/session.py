import os
import shutil
from dataclasses import dataclass, field

from pipeshell.history import History


@dataclass
class ShellSession:
    """
    State shared by every command dispatch: working directory, environment
    and the history log. Only the read loop mutates the live session;
    pipeline builtins get a fork.
    """
    cwd: str
    env: dict = field(default_factory=dict)
    history: History = field(default_factory=History)
    running: bool = True
    exit_code: int = 0
    last_status: int = 0

    @classmethod
    def from_environment(cls, history=None):
        return cls(cwd=os.getcwd(), env=dict(os.environ),
                   history=history if history is not None else History())

    def fork(self):
        """Independent copy for commands that must not touch the shell state"""
        return ShellSession(cwd=self.cwd, env=dict(self.env),
                            history=self.history.copy(),
                            last_status=self.last_status)

    @property
    def path(self):
        return self.env.get("PATH", os.defpath)

    @property
    def home(self):
        return self.env.get("HOME") or os.path.expanduser("~")

    def resolve(self, path):
        """Expand ~ and make a path absolute against the session cwd"""
        if path == "~" or path.startswith("~/"):
            path = self.home + path[1:]
        return os.path.normpath(os.path.join(self.cwd, path))

    def which(self, name):
        """First executable called `name` on PATH, or None"""
        if os.sep in name:
            candidate = self.resolve(name)
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                return candidate
            return None
        return shutil.which(name, path=self.path)

    def stop(self, code=0):
        self.running = False
        self.exit_code = code
