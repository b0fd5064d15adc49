"""Configuration management for kub-timeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kub_timeline.engine.ranking import SYSTEM_NAMESPACES
from kub_timeline.engine.viewport import PRESETS

CONFIG_FILENAME = ".kub-timeline.yaml"
DEFAULT_PATHS = [
    Path.cwd() / CONFIG_FILENAME,
    Path.home() / CONFIG_FILENAME,
    Path.home() / ".config" / "kub-timeline" / "config.yaml",
]

ENV_PREFIX = "KUB_TIMELINE_"

_TRUE = ("1", "true", "yes", "on")


class ConfigError(Exception):
    """Config file or override has an unusable value."""


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE


@dataclass
class Config:
    """Application configuration."""

    # Kubernetes
    kubeconfig: str = ""
    context: str = ""
    namespace: str = ""  # Empty = all namespaces

    # View
    group_by_app: bool = False
    show_routine: bool = False
    time_range_preset: str = "1h"
    search: str = ""
    width: int = 0  # 0 = terminal width

    # Ranking
    system_namespaces: list[str] = field(default_factory=lambda: sorted(SYSTEM_NAMESPACES))

    def __post_init__(self) -> None:
        if self.time_range_preset not in PRESETS:
            raise ConfigError(
                f"unknown time_range_preset {self.time_range_preset!r}; "
                f"expected one of {', '.join(PRESETS)}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Create config from a dictionary (e.g., parsed YAML)."""
        try:
            width = int(data.get("width", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"width must be an integer: {data.get('width')!r}") from exc

        return cls(
            kubeconfig=data.get("kubeconfig", "") or "",
            context=data.get("context", "") or "",
            namespace=data.get("namespace", "") or "",
            group_by_app=_as_bool(data.get("group_by_app", False)),
            show_routine=_as_bool(data.get("show_routine", False)),
            time_range_preset=str(data.get("time_range_preset", "1h")).strip().lower(),
            search=data.get("search", "") or "",
            width=width,
            system_namespaces=list(data.get("system_namespaces") or sorted(SYSTEM_NAMESPACES)),
        )

    @classmethod
    def load(cls, path: str | None = None) -> Config:
        """Load config from file, with env var overrides."""
        config_data: dict[str, Any] = {}

        # Find config file
        if path:
            config_path = Path(path)
        else:
            config_path = None
            for p in DEFAULT_PATHS:
                if p.exists():
                    config_path = p
                    break

        if config_path and config_path.exists():
            with open(config_path) as f:
                try:
                    config_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"cannot parse {config_path}: {exc}") from exc
            if not isinstance(config_data, dict):
                raise ConfigError(f"{config_path} must contain a mapping")

        # Environment variable overrides (KUB_TIMELINE_NAMESPACE, ...)
        for key in (
            "kubeconfig",
            "context",
            "namespace",
            "group_by_app",
            "show_routine",
            "time_range_preset",
            "search",
            "width",
        ):
            if (env_value := os.environ.get(ENV_PREFIX + key.upper())) is not None:
                config_data[key] = env_value

        if env_ns := os.environ.get(ENV_PREFIX + "SYSTEM_NAMESPACES"):
            config_data["system_namespaces"] = [ns.strip() for ns in env_ns.split(",") if ns.strip()]

        return cls.from_dict(config_data)
