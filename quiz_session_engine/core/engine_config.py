"""Engine-wide defaults loaded from config/engine.yaml and the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .types import DEFAULT_PASSING_SCORE, FEEDBACK_DEFERRED, FEEDBACK_INSTANT

load_dotenv()

DEFAULT_SETTINGS: dict[str, Any] = {
    "passing_score_percent": DEFAULT_PASSING_SCORE,
    "feedback_mode": FEEDBACK_INSTANT,
    "tick_seconds": 1.0,
    "session_ttl_seconds": 3600.0,
}

ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "passing_score_percent": ("QUIZ_ENGINE_PASSING_SCORE", float),
    "feedback_mode": ("QUIZ_ENGINE_FEEDBACK_MODE", str),
    "tick_seconds": ("QUIZ_ENGINE_TICK_SECONDS", float),
    "session_ttl_seconds": ("QUIZ_ENGINE_SESSION_TTL_SECONDS", float),
}


class EngineConfigLoader:
    """Merges defaults, the YAML file and environment overrides, in that order."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "config" / "engine.yaml"
        self.config_path = config_path
        self._config: Dict[str, Any] | None = None

    def _load_config(self) -> None:
        if self._config is not None:
            return
        if not self.config_path.exists():
            self._config = {}
            return
        with self.config_path.open("r", encoding="utf-8") as handle:
            self._config = yaml.safe_load(handle) or {}

    def settings(self) -> dict[str, Any]:
        self._load_config()
        merged = dict(DEFAULT_SETTINGS)
        engine = (self._config or {}).get("engine", {})
        if isinstance(engine, dict):
            merged.update({k: v for k, v in engine.items() if k in DEFAULT_SETTINGS and v is not None})

        for key, (env_name, cast) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name, "").strip()
            if not raw:
                continue
            try:
                merged[key] = cast(raw)
            except ValueError:
                continue

        if merged["feedback_mode"] not in (FEEDBACK_INSTANT, FEEDBACK_DEFERRED):
            merged["feedback_mode"] = DEFAULT_SETTINGS["feedback_mode"]
        return merged

    def get(self, key: str) -> Any:
        return self.settings()[key]


engine_config = EngineConfigLoader()
