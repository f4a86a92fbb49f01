from datetime import date
from pathlib import Path

import pytest

from localwork.cli import note_cli, task_cli
from localwork.workspaces.workspace_config import MARKER_REL_PATH


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("TASKS_DIR", raising=False)
    monkeypatch.delenv("NOTES_DIR", raising=False)
    return project


def test_task_workflow(project: Path, capsys: pytest.CaptureFixture):
    assert task_cli.main(["init", "--here"]) == 0
    assert (project / MARKER_REL_PATH).is_file()

    assert task_cli.main(["new", "Fix", "login", "bug", "-p", "high"]) == 0
    tasks = project / ".local-work" / "tasks"
    assert (tasks / "backlog" / "TASK-001-fix-login-bug.md").is_file()

    assert task_cli.main(["start", "1"]) == 0
    assert (tasks / "active" / "TASK-001-fix-login-bug.md").is_file()
    assert not (tasks / "backlog" / "TASK-001-fix-login-bug.md").exists()

    assert task_cli.main(["update", "TASK-001", "tags", "auth,", "web"]) == 0
    assert "tags: [auth, web]" in (tasks / "active" / "TASK-001-fix-login-bug.md").read_text()

    assert task_cli.main(["done", "login"]) == 0
    assert task_cli.main(["archive", "TASK-001"]) == 0
    assert (tasks / "archived" / "TASK-001-fix-login-bug.md").is_file()

    capsys.readouterr()
    assert task_cli.main(["list", "archived"]) == 0
    assert "TASK-001" in capsys.readouterr().out


def test_task_errors_exit_nonzero(project: Path, capsys: pytest.CaptureFixture):
    assert task_cli.main(["list"]) == 1
    assert "task init" in capsys.readouterr().out

    assert task_cli.main(["init", "--here"]) == 0
    assert task_cli.main(["init", "--here"]) == 1
    assert task_cli.main(["start", "42"]) == 1
    assert task_cli.main(["update", "1", "status", "active"]) == 1


def test_global_flag(project: Path, tmp_path: Path):
    assert task_cli.main(["-g", "new", "Global", "thing"]) == 0
    global_tasks = tmp_path / "data" / "local-work" / "tasks"
    assert (global_tasks / "backlog" / "TASK-001-global-thing.md").is_file()
    assert not (project / ".local-work").exists()


def test_notes(project: Path):
    assert note_cli.main(["init", "--here"]) == 0
    notes = project / ".local-work" / "notes"

    assert note_cli.main(["daily"]) == 0
    assert (notes / "daily" / f"{date.today().isoformat()}.md").is_file()

    assert note_cli.main(["tech", "Use", "SQLite"]) == 0
    assert (notes / "technical" / "ADR-001-use-sqlite.md").is_file()

    assert note_cli.main(["meeting", "Retro"]) == 0
    assert note_cli.main(["meeting", "Retro"]) == 1

    assert note_cli.main(["show", "sqlite"]) == 0
    assert note_cli.main(["search", "retro"]) == 0
    assert note_cli.main(["list", "recipes"]) == 1


def test_stats_and_standup(project: Path, capsys: pytest.CaptureFixture):
    assert task_cli.main(["init", "--here"]) == 0
    assert task_cli.main(["new", "Urgent", "-p", "high"]) == 0
    assert task_cli.main(["new", "Going", "--status", "active"]) == 0
    capsys.readouterr()

    assert task_cli.main(["stats"]) == 0
    out = capsys.readouterr().out
    assert "BY STATUS" in out
    assert "Total: 2 tasks" in out

    assert task_cli.main(["standup", "--markdown"]) == 0
    out = capsys.readouterr().out
    assert "## What I'm working on today" in out
    assert "**Going** (TASK-002)" in out
    assert "**Urgent** (TASK-001)" in out

    assert task_cli.main(["standup", "--weekly"]) == 0
    assert "COMPLETED THIS WEEK (0)" in capsys.readouterr().out
