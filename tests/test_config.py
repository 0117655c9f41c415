from __future__ import annotations

from pathlib import Path

import pytest

from ghcopilot.config import Config, ConfigError, config_dir, load_config, parse_duration


@pytest.fixture
def cfg_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    d = tmp_path / "gh-copilot"
    d.mkdir()
    return d


@pytest.mark.parametrize(
    "raw, seconds",
    [
        ("90s", 90.0),
        ("10m", 600.0),
        ("1h30m", 5400.0),
        ("250ms", 0.25),
        ("1.5s", 1.5),
        (45, 45.0),
        ("12", 12.0),
    ],
)
def test_parse_duration(raw, seconds):
    assert parse_duration(raw) == pytest.approx(seconds)


@pytest.mark.parametrize("raw", ["", "ten minutes", "10x", "5m garbage", True])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_defaults_when_directory_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    cfg = load_config()
    assert cfg == Config()
    assert cfg.model == "claude-3.7-sonnet"
    assert cfg.context_timeout == 600.0
    assert cfg.http.http_client_timeout == 60.0
    assert cfg.render.format == "markdown"
    assert cfg.prompts["ask"].prompt == "Answer the following question."


def test_config_dir_falls_back_to_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert config_dir() == tmp_path / ".config" / "gh-copilot"


def test_yaml_values_and_merged_prompts(cfg_dir: Path):
    (cfg_dir / "config.yaml").write_text(
        "context_timeout: 2m\n"
        "model: gpt-4o\n"
        "http:\n"
        "  http_client_timeout: 90s\n"
        "  max_idle_conns: 4\n"
        "  force_attempt_http2: true\n"
        "render:\n"
        "  format: plain\n"
        "  wrap_width: 80\n"
        "prompts:\n"
        "  review:\n"
        "    model: o1-mini\n"
        "    prompt: Review this code.\n",
        encoding="utf-8",
    )

    cfg = load_config()

    assert cfg.context_timeout == 120.0
    assert cfg.model == "gpt-4o"
    assert cfg.http.http_client_timeout == 90.0
    assert cfg.http.max_idle_conns == 4
    assert cfg.http.dial_context_timeout == 30.0
    assert cfg.render.format == "plain"
    assert cfg.render.wrap_width == 80
    assert cfg.render.wrap_lines is True
    assert cfg.prompts["review"].model == "o1-mini"
    assert "ask" in cfg.prompts


def test_yml_extension_is_found(cfg_dir: Path):
    (cfg_dir / "config.yml").write_text("model: from-yml\n", encoding="utf-8")
    assert load_config().model == "from-yml"


def test_yaml_preferred_over_yml(cfg_dir: Path):
    (cfg_dir / "config.yaml").write_text("model: from-yaml\n", encoding="utf-8")
    (cfg_dir / "config.yml").write_text("model: from-yml\n", encoding="utf-8")
    assert load_config().model == "from-yaml"


def test_empty_file_gives_defaults(cfg_dir: Path):
    (cfg_dir / "config.yaml").write_text("", encoding="utf-8")
    assert load_config() == Config()


@pytest.mark.parametrize(
    "text",
    [
        "model: [unclosed\n",
        "context_timeout: forever\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_file_raises(cfg_dir: Path, text: str):
    (cfg_dir / "config.yaml").write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError, match="config.yaml"):
        load_config()
