from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

CONFIG_DIR_NAME = "gh-copilot"
CONFIG_FILES = ("config.yaml", "config.yml")

DEFAULT_MODEL = "claude-3.7-sonnet"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


class ConfigError(RuntimeError):
    """The config file exists but could not be loaded."""


def parse_duration(value) -> float:
    """Parse "90s", "10m", "1h30m", "250ms" or a plain number into seconds."""

    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass

    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"invalid duration: {value!r}")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in parts)


class HttpConfig(BaseModel):
    dial_context_timeout: float = 30.0
    http_client_timeout: float = 60.0
    max_idle_conns: int = 100
    disable_compression: bool = False
    disable_keep_alives: bool = False

    @field_validator("dial_context_timeout", "http_client_timeout", mode="before")
    @classmethod
    def parse_timeouts(cls, v):
        return parse_duration(v)


class RenderConfig(BaseModel):
    format: str = "markdown"  # "markdown" or "plain"
    theme: str = "auto"
    wrap_lines: bool = True
    wrap_width: int = 120


class PromptConfig(BaseModel):
    model: str | None = None
    prompt: str


def _default_prompts() -> dict[str, PromptConfig]:
    return {"ask": PromptConfig(prompt="Answer the following question.")}


class Config(BaseModel):
    context_timeout: float = 600.0
    model: str = DEFAULT_MODEL
    http: HttpConfig = Field(default_factory=HttpConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    prompts: dict[str, PromptConfig] = Field(default_factory=_default_prompts)

    @field_validator("context_timeout", mode="before")
    @classmethod
    def parse_context_timeout(cls, v):
        return parse_duration(v)

    @field_validator("prompts", mode="after")
    @classmethod
    def merge_default_prompts(cls, v: dict[str, PromptConfig]) -> dict[str, PromptConfig]:
        return {**_default_prompts(), **v}


def config_dir() -> Path:
    config_home = os.getenv("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / CONFIG_DIR_NAME
    return Path(os.path.expanduser("~")) / ".config" / CONFIG_DIR_NAME


def load_config(directory: Path | None = None) -> Config:
    """Load the first config file found in the config directory.

    Missing directory or files give the defaults.
    """

    directory = directory or config_dir()
    if not directory.is_dir():
        return Config()

    for name in CONFIG_FILES:
        path = directory / name
        if not path.is_file():
            continue
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            return Config.model_validate(raw)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            raise ConfigError(f"failed to load config from {name}: {e}") from e

    return Config()
