import os
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from quiz_session_engine.core.engine_config import EngineConfigLoader
from quiz_session_engine.core.logging_utils import rotate_log_if_needed
from quiz_session_engine.core.runtime_data import get_runtime_paths


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("QUIZ_ENGINE_PASSING_SCORE", raising=False)
    monkeypatch.delenv("QUIZ_ENGINE_FEEDBACK_MODE", raising=False)
    monkeypatch.delenv("QUIZ_ENGINE_TICK_SECONDS", raising=False)
    monkeypatch.delenv("QUIZ_ENGINE_SESSION_TTL_SECONDS", raising=False)
    settings = EngineConfigLoader(tmp_path / "missing.yaml").settings()
    assert settings == {
        "passing_score_percent": 70,
        "feedback_mode": "instant",
        "tick_seconds": 1.0,
        "session_ttl_seconds": 3600.0,
    }


def test_yaml_then_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "engine.yaml"
    path.write_text("engine:\n  passing_score_percent: 80\n  feedback_mode: deferred\n", encoding="utf-8")
    monkeypatch.delenv("QUIZ_ENGINE_FEEDBACK_MODE", raising=False)
    monkeypatch.setenv("QUIZ_ENGINE_PASSING_SCORE", "65")
    monkeypatch.setenv("QUIZ_ENGINE_TICK_SECONDS", "not-a-number")

    settings = EngineConfigLoader(path).settings()
    assert settings["passing_score_percent"] == 65.0
    assert settings["feedback_mode"] == "deferred"
    assert settings["tick_seconds"] == 1.0


def test_invalid_feedback_mode_falls_back(tmp_path, monkeypatch):
    monkeypatch.setenv("QUIZ_ENGINE_FEEDBACK_MODE", "loud")
    assert EngineConfigLoader(tmp_path / "none.yaml").get("feedback_mode") == "instant"


def test_runtime_paths_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("QUIZ_ENGINE_RUNTIME_DIR", str(tmp_path / "rt"))
    paths = get_runtime_paths()
    assert paths.logs_dir.is_dir()
    assert paths.quizzes_dir.is_dir()
    assert paths.log_path.parent == paths.logs_dir


def test_rotate_log_when_too_large(tmp_path, monkeypatch):
    monkeypatch.setenv("QUIZ_ENGINE_LOG_MAX_BYTES", "10")
    log_path = tmp_path / "quiz-engine.log"
    log_path.write_text("x" * 50, encoding="utf-8")

    rotated = rotate_log_if_needed(log_path)
    assert rotated is not None
    assert rotated.exists()
    assert not log_path.exists()


def test_small_fresh_log_is_left_alone(tmp_path, monkeypatch):
    monkeypatch.setenv("QUIZ_ENGINE_LOG_MAX_BYTES", "1000")
    monkeypatch.setenv("QUIZ_ENGINE_LOG_MAX_AGE_HOURS", "1")
    log_path = tmp_path / "quiz-engine.log"
    log_path.write_text("short", encoding="utf-8")
    now = time.time()
    os.utime(log_path, (now, now))

    assert rotate_log_if_needed(log_path) is None
    assert log_path.exists()
