"""Global configuration management for noteweave."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict

from .text import Messages

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~")) / ".noteweave"
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
DEFAULT_MODEL = "text-embedding-ada-002"
DEFAULT_RESULTS_COUNT = 50
ENV_API_KEY = "NOTEWEAVE_API_KEY"
OPENAI_ENV = "OPENAI_API_KEY"

_STRING_FIELDS = (
    "file_exclusions",
    "folder_exclusions",
    "header_exclusions",
    "path_only",
)
_BOOL_FIELDS = (
    "skip_sections",
    "show_full_path",
    "log_render",
    "log_render_files",
)


@dataclass
class Config:
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    base_url: str | None = None
    results_count: int = DEFAULT_RESULTS_COUNT
    skip_sections: bool = False
    file_exclusions: str = ""
    folder_exclusions: str = ""
    header_exclusions: str = ""
    path_only: str = ""
    show_full_path: bool = False
    log_render: bool = False
    log_render_files: bool = False


@dataclass(frozen=True)
class ExclusionRules:
    """Matchers derived from the comma separated settings strings."""

    file_exclusions: tuple[str, ...] = ()
    folder_exclusions: tuple[str, ...] = ()
    header_exclusions: tuple[str, ...] = ()
    path_only: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: Config) -> "ExclusionRules":
        folders = tuple(
            folder if folder.endswith("/") else f"{folder}/"
            for folder in split_matchers(config.folder_exclusions)
        )
        return cls(
            file_exclusions=split_matchers(config.file_exclusions),
            folder_exclusions=folders,
            header_exclusions=split_matchers(config.header_exclusions),
            path_only=split_matchers(config.path_only),
        )

    def excluded_by(self, path: str) -> str | None:
        """Return the matcher that excludes *path*, if any."""
        for matcher in self.file_exclusions:
            if matcher in path:
                return matcher
        for folder in self.folder_exclusions:
            if path.startswith(folder):
                return folder
        return None

    def path_only_match(self, path: str) -> str | None:
        for matcher in self.path_only:
            if matcher in path:
                return matcher
        return None


def split_matchers(value: str | None) -> tuple[str, ...]:
    """Split a comma separated settings value into trimmed, non-empty matchers."""
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_config() -> Config:
    if not CONFIG_FILE.exists():
        return Config()
    raw = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
    return Config(
        api_key=raw.get("api_key") or None,
        model=raw.get("model") or DEFAULT_MODEL,
        base_url=raw.get("base_url") or None,
        results_count=int(raw.get("results_count", DEFAULT_RESULTS_COUNT)),
        skip_sections=bool(raw.get("skip_sections", False)),
        file_exclusions=raw.get("file_exclusions") or "",
        folder_exclusions=raw.get("folder_exclusions") or "",
        header_exclusions=raw.get("header_exclusions") or "",
        path_only=raw.get("path_only") or "",
        show_full_path=bool(raw.get("show_full_path", False)),
        log_render=bool(raw.get("log_render", False)),
        log_render_files=bool(raw.get("log_render_files", False)),
    )


def save_config(config: Config) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = {}
    if config.api_key:
        data["api_key"] = config.api_key
    if config.model:
        data["model"] = config.model
    if config.base_url:
        data["base_url"] = config.base_url
    data["results_count"] = config.results_count
    for name in _STRING_FIELDS:
        data[name] = getattr(config, name)
    for name in _BOOL_FIELDS:
        data[name] = bool(getattr(config, name))
    CONFIG_FILE.write_text(
        json.dumps(data, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def config_from_json(
    payload: str | Mapping[str, object], *, base: Config | None = None
) -> Config:
    """Return a Config from a JSON string or mapping without saving it."""
    data = _coerce_config_payload(payload)
    config = Config() if base is None else replace(base)
    _apply_config_payload(config, data)
    return config


def update_config_from_json(
    payload: str | Mapping[str, object], *, replace: bool = False
) -> Config:
    """Update config from a JSON string or mapping and persist it."""
    base = None if replace else load_config()
    config = config_from_json(payload, base=base)
    save_config(config)
    return config


def set_api_key(value: str | None) -> None:
    config = load_config()
    config.api_key = value
    save_config(config)


def set_model(value: str) -> None:
    config = load_config()
    config.model = value
    save_config(config)


def set_base_url(value: str | None) -> None:
    config = load_config()
    config.base_url = value
    save_config(config)


def set_results_count(value: int) -> None:
    if value <= 0:
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="results_count"))
    config = load_config()
    config.results_count = value
    save_config(config)


def resolve_api_key(configured: str | None) -> str | None:
    """Return the first available API key from config or environment."""

    if configured:
        return configured
    general = os.getenv(ENV_API_KEY)
    if general:
        return general
    openai_key = os.getenv(OPENAI_ENV)
    if openai_key:
        return openai_key
    return None


def _coerce_config_payload(payload: str | Mapping[str, object]) -> Mapping[str, object]:
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID) from exc
    elif isinstance(payload, Mapping):
        data = dict(payload)
    else:
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    if not isinstance(data, Mapping):
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    return data


def _apply_config_payload(config: Config, payload: Mapping[str, object]) -> None:
    if "api_key" in payload:
        config.api_key = _coerce_optional_str(payload["api_key"], "api_key")
    if "model" in payload:
        config.model = _coerce_required_str(payload["model"], "model", DEFAULT_MODEL)
    if "base_url" in payload:
        config.base_url = _coerce_optional_str(payload["base_url"], "base_url")
    if "results_count" in payload:
        count = _coerce_int(payload["results_count"], "results_count", DEFAULT_RESULTS_COUNT)
        if count <= 0:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="results_count"))
        config.results_count = count
    for name in _STRING_FIELDS:
        if name in payload:
            setattr(config, name, _coerce_optional_str(payload[name], name) or "")
    for name in _BOOL_FIELDS:
        if name in payload:
            setattr(config, name, _coerce_bool(payload[name], name))


def _coerce_optional_str(value: object, field: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_required_str(value: object, field: str, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or default
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_int(value: object, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return default
        try:
            return int(cleaned)
        except ValueError as exc:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field)) from exc
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        cleaned = value.strip().lower()
        if cleaned in {"true", "1", "yes", "on"}:
            return True
        if cleaned in {"false", "0", "no", "off"}:
            return False
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
