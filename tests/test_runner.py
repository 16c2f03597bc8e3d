import json

import pytest

from analytics_core.config import Configuration, configure_logging, load_config, save_config
from analytics_core.errors import ConfigurationError
from analytics_core.models import FlushingMode
from analytics_core.runner import create_tracking_manager

pytestmark = pytest.mark.unit


def test_config_round_trip(tmp_path):
    path = tmp_path / "config.json"
    config = Configuration(project_token="tok", session_timeout=30.0)
    save_config(config, path)
    assert json.loads(path.read_text())["projectToken"] == "tok"
    assert load_config(path) == config


def test_unreadable_config_is_none(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert load_config(path) is None
    assert load_config(tmp_path / "missing.json") is None


def test_factory_requires_config(tmp_path):
    with pytest.raises(ConfigurationError):
        create_tracking_manager(base_dir=tmp_path, log_to_file=False)


def test_factory_builds_persistent_manager(tmp_path):
    save_config(Configuration(project_token="tok"), tmp_path / "config.json")
    manager = create_tracking_manager(
        base_dir=tmp_path, flushing_mode=FlushingMode.manual(), log_to_file=False,
    )
    manager.track_event("view")

    events = [e.event_type for e in manager.database.list_events()]
    assert events == ["installation", "view"]
    assert (tmp_path / "records" / "events.jsonl").exists()
    assert (tmp_path / "state.json").exists()


def test_logging_is_configured_once(tmp_path):
    first = configure_logging(log_file=None)
    handlers = list(first.handlers)
    second = configure_logging(log_file=tmp_path / "agent.log")
    assert second is first
    assert second.handlers == handlers
    assert not hasattr(second, "_configured")
