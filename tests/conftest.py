"""Shared fixtures for pipeshell tests."""

import io
import os
import stat
import sys

import pytest

from pipeshell.session import ShellSession

PYTHON = sys.executable


@pytest.fixture
def session(tmp_path):
    """A session rooted in a fresh temporary directory."""
    return ShellSession(cwd=str(tmp_path), env=dict(os.environ))


@pytest.fixture
def streams():
    """(stdin, stdout, stderr) for commands: terminal stdin, captured output."""
    return None, io.BytesIO(), io.BytesIO()


@pytest.fixture
def bin_dir(tmp_path):
    """A PATH directory holding git, grep and grpc-tool stubs."""
    d = tmp_path / "bin"
    d.mkdir()
    for name in ("git", "grep", "grpc-tool"):
        p = d / name
        p.write_text("#!/bin/sh\nexit 0\n")
        p.chmod(p.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    (d / "README").write_text("not a program\n")
    return d


@pytest.fixture
def py():
    """Build a command line fragment running a python snippet."""
    def build(code):
        return f"'{PYTHON}' -c \"{code}\""
    return build
