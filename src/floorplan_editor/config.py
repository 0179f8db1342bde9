# src/floorplan_editor/config.py
"""Editor configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

ENV_PREFIX = "FLOORPLAN_EDITOR_"


@dataclass
class EditorConfig:
    """Tunables for the editing session, autosave and REST client."""

    history_limit: int = 20
    save_delay: float = 0.3
    overlap_tolerance: float = 0.01
    api_base_url: str = "http://localhost:3000/api/v1"
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_backoff: float = 0.5
    max_retry_backoff: float = 8.0
    cache_max_age: int = 300
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        if self.save_delay < 0:
            raise ValueError("save_delay must not be negative")
        if self.overlap_tolerance < 0:
            raise ValueError("overlap_tolerance must not be negative")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> EditorConfig:
        """Build a config from ``FLOORPLAN_EDITOR_*`` variables, then apply overrides."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            kind = type(f.default)
            values[f.name] = kind(raw)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
