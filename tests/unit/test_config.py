"""Tests for configuration loading."""

from taskchain.config import load_config
from taskchain.engine import WorkflowEngine
from taskchain.persistence import SQLiteTaskRepository


def test_load_config_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_config()
    assert config.database_url is None
    assert config.engine.idempotency_scope == "template"
    assert config.engine.duplicate_guard == "none"
    assert config.engine.active_page_size == 100


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "taskchain.yaml"
    config_path.write_text(
        """
log_level: DEBUG
engine:
  idempotency_scope: step
  duplicate_guard: idempotency_key
  active_page_size: 25
"""
    )
    monkeypatch.setenv("TASKCHAIN_CONFIG", str(config_path))

    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.engine.idempotency_scope == "step"
    assert config.engine.duplicate_guard == "idempotency_key"
    assert config.engine.active_page_size == 25


def test_database_url_env_override(tmp_path, monkeypatch):
    db_url = f"sqlite://{tmp_path / 'tasks.db'}"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", db_url)

    config = load_config()
    assert config.database_url == db_url

    engine = WorkflowEngine.from_config(config)
    assert isinstance(engine.repository, SQLiteTaskRepository)


def test_templates_path_is_honoured(tmp_path, monkeypatch):
    templates = tmp_path / "templates.yaml"
    templates.write_text(
        """
- id: annual-review
  name: Annual Review
  trigger: meeting_completed
  steps:
    - id: ar-1
      label: File Notes
      task_subject: "WORKFLOW — File meeting notes"
"""
    )
    config_path = tmp_path / "taskchain.yaml"
    config_path.write_text(f"templates_path: {templates}\n")
    monkeypatch.setenv("TASKCHAIN_CONFIG", str(config_path))

    engine = WorkflowEngine.from_config()
    assert [t.id for t in engine.list_templates()] == ["annual-review"]
