"""Shared fixtures: a scripted fake ctags and, when installed, the real one."""

import os
import shutil
import stat
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from tagstream.core.config import BIN_ENV_VAR, Options
from tagstream.engine import Parser

FAKE_CTAGS = Path(__file__).parent / "fake_ctags.py"

JAVA_SOURCE = """
package com.sourcegraph;
import a.b.c;
class A implements B extends C {
  public static int D = 1;
  public int E;
  public A() {
    E = 2;
  }
  public int F() {
    E++;
  }
}
"""


@pytest.fixture
def fake_ctags(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """An executable that runs tests/fake_ctags.py with this interpreter."""
    if os.name == "nt":
        pytest.skip("fake ctags wrapper is a POSIX shell script")

    monkeypatch.delenv(BIN_ENV_VAR, raising=False)
    for name in ("FAKE_CTAGS_STARTUP", "FAKE_CTAGS_REFUSE", "FAKE_CTAGS_MAPS_FAIL"):
        monkeypatch.delenv(name, raising=False)

    wrapper = tmp_path / "fake-ctags"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_CTAGS}" "$@"\n')
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(wrapper)


@pytest.fixture
def parser(fake_ctags: str) -> Iterator[Parser]:
    """A parser running against the fake engine."""
    p = Parser(Options(bin=fake_ctags, close_timeout=2.0))
    yield p
    p.close()


@pytest.fixture
def java_source() -> str:
    """A small class with a package, two fields, a constructor and a method."""
    return JAVA_SOURCE


@pytest.fixture
def ctags_bin() -> str:
    """Path of a real universal-ctags; skips the test when none is installed."""
    candidate = os.environ.get(BIN_ENV_VAR) or shutil.which("universal-ctags")
    if not candidate:
        pytest.skip(f"universal-ctags not found (set {BIN_ENV_VAR})")
    return candidate
