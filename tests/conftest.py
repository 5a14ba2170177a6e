"""Shared test fixtures."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from claude_todo.queue.repository import TaskRepository

_SRC_DIR = Path(__file__).resolve().parents[1] / "src"


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[TaskRepository]:
    repo = TaskRepository(tmp_path / "queue.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def echo_cli(tmp_path: Path) -> Path:
    """Executable stand-in for the ``claude`` binary backed by the echo agent."""

    script = tmp_path / "claude-echo"
    script.write_text(
        f"#!{sys.executable}\n"
        "import sys\n"
        f"sys.path.insert(0, {str(_SRC_DIR)!r})\n"
        "from claude_todo.queue.backend.echo_agent import main\n"
        "sys.exit(main())\n",
        "utf-8",
    )
    script.chmod(0o755)
    return script
