import json

import pytest
from loguru import logger

from floorplan_editor.config import EditorConfig
from floorplan_editor.logging_config import get_logger, setup_logging


def test_defaults():
    config = EditorConfig()
    assert config.history_limit == 20
    assert config.save_delay == 0.3
    assert config.overlap_tolerance == 0.01
    assert config.max_retries == 3


def test_from_env_casts_values():
    config = EditorConfig.from_env({
        "FLOORPLAN_EDITOR_HISTORY_LIMIT": "50",
        "FLOORPLAN_EDITOR_SAVE_DELAY": "1.5",
        "FLOORPLAN_EDITOR_API_BASE_URL": "https://iwms.example.com/api/v1",
        "UNRELATED": "x",
    })
    assert config.history_limit == 50
    assert config.save_delay == 1.5
    assert config.api_base_url == "https://iwms.example.com/api/v1"


def test_overrides_win_and_none_is_ignored():
    config = EditorConfig.from_env(
        {"FLOORPLAN_EDITOR_MAX_RETRIES": "7"}, max_retries=None, log_level="DEBUG"
    )
    assert config.max_retries == 7
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("field,value", [
    ("history_limit", 0),
    ("save_delay", -1),
    ("overlap_tolerance", -0.1),
    ("max_retries", -1),
])
def test_invalid_values(field, value):
    with pytest.raises(ValueError):
        EditorConfig(**{field: value})


def test_json_logging_includes_component(capsys):
    setup_logging(level="INFO", json_format=True)
    try:
        get_logger("session").bind(floor_plan_id="fp-1").info("Saved version {}", "2")
        line = capsys.readouterr().err.strip().splitlines()[-1]
    finally:
        logger.remove()
    payload = json.loads(line)
    assert payload["message"] == "Saved version 2"
    assert payload["level"] == "INFO"
    assert payload["component"] == "session"
    assert payload["floor_plan_id"] == "fp-1"


def test_text_logging_respects_level(capsys):
    setup_logging(level="WARNING")
    try:
        get_logger("client").info("hidden")
        get_logger("client").warning("retrying")
        err = capsys.readouterr().err
    finally:
        logger.remove()
    assert "hidden" not in err
    assert "client | retrying" in err
