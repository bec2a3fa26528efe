from __future__ import annotations

from pathlib import Path

import pytest

from config.settings import validate_config
from redactor_ia.config_manager import Config, ConfigError, load_config, main, save_config
from redactor_ia.config_schema import DEFAULT_CONFIG, iter_field_docs


def _flatten(mapping: dict[str, object], prefix: str = "") -> set[str]:
    keys: set[str] = set()
    for name, value in mapping.items():
        path = f"{prefix}.{name}" if prefix else name
        if isinstance(value, dict):
            keys.add(path)
            keys.update(_flatten(value, path))
        else:
            keys.add(path)
    return keys


def test_precedence_env_overrides(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[scanner]\nmax_topics_per_scan = 5\n", encoding="utf-8")
    env_file = tmp_path / ".env"
    env_file.write_text("REDACTOR__SCANNER__MAX_TOPICS_PER_SCAN=6\n", encoding="utf-8")

    from_files = load_config(config_file, environ={})
    assert from_files.scanner.max_topics_per_scan == 6
    assert from_files._metadata.provenance["scanner.max_topics_per_scan"].layer == "env-file"

    environ = {"REDACTOR__SCANNER__MAX_TOPICS_PER_SCAN": "7"}
    config = load_config(config_file, environ=environ)
    assert config.scanner.max_topics_per_scan == 7
    provenance = config._metadata.provenance["scanner.max_topics_per_scan"]
    assert provenance.layer == "env"
    assert provenance.env_var == "REDACTOR__SCANNER__MAX_TOPICS_PER_SCAN"


def test_plain_credential_variables_fill_empty_secrets(tmp_path: Path) -> None:
    environ = {"OPENAI_API_KEY": "sk-test", "FACEBOOK_PAGE_ID": "1234"}

    config = load_config(tmp_path / "config.toml", environ=environ)

    assert config.llm.openai_api_key == "sk-test"
    assert config.facebook.page_id == "1234"
    assert config._metadata.provenance["llm.openai_api_key"].env_var == "OPENAI_API_KEY"


def test_save_config_creates_backups(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[generation]\nfactual_min_chars = 2500\n", encoding="utf-8")
    config = load_config(config_file, environ={})
    data = config.model_dump(mode="python")
    data["generation"]["factual_min_chars"] = 3200
    updated = Config.model_validate(data)
    updated._metadata = config._metadata
    save_config(updated)
    data["generation"]["factual_min_chars"] = 3500
    updated = Config.model_validate(data)
    updated._metadata = config._metadata
    save_config(updated)
    backups = list((config_file.parent / "backups").glob("config.toml.*.bak"))
    assert backups, "second save should produce a timestamped backup"
    assert load_config(config_file, environ={}).generation.factual_min_chars == 3500


def test_saved_optional_none_reloads_as_none(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[facebook]\npage_id = \"1234\"\n", encoding="utf-8")
    config = load_config(config_file, environ={})
    data = config.model_dump(mode="python")
    data["facebook"]["page_id"] = None
    updated = Config.model_validate(data)
    updated._metadata = config._metadata
    save_config(updated)

    assert 'page_id = ""' in config_file.read_text(encoding="utf-8")
    reloaded = load_config(config_file, environ={})
    assert reloaded.facebook.page_id is None
    assert reloaded.database.port is None


def test_blank_database_port_normalized(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[database]\nport = \"\"\n", encoding="utf-8")
    assert load_config(config_file, environ={}).database.port is None


def test_validation_errors_report_source(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[scanner]\nmax_topics_per_scan = 50\n", encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_config(config_file, environ={})
    assert "scanner.max_topics_per_scan" in str(excinfo.value)
    assert "file" in str(excinfo.value)


@pytest.mark.parametrize(
    "toml",
    [
        "[scoring.weights]\nrecencia = 0.9\n",
        "[publishing]\nauto_schedule_start_hour = 22\nauto_schedule_end_hour = 8\n",
        "[database]\ndriver = \"mysql\"\n",
        "[images]\nenabled = \"quizás\"\n",
    ],
)
def test_inconsistent_sections_are_rejected(tmp_path: Path, toml: str) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text(toml, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(config_file, environ={})


def test_validate_config_accepts_defaults() -> None:
    validate_config(DEFAULT_CONFIG)


def test_page_token_requires_page_id() -> None:
    config = DEFAULT_CONFIG.model_copy(deep=True)
    config.facebook.page_token = "token"
    with pytest.raises(ConfigError, match="page_id"):
        validate_config(config)


def test_schema_keys_cover_defaults() -> None:
    schema_keys = {entry["name"] for entry in iter_field_docs(DEFAULT_CONFIG) if not entry.get("is_nested")}
    default_keys = _flatten(DEFAULT_CONFIG.model_dump(mode="python"))
    assert schema_keys.issubset(default_keys)


@pytest.mark.parametrize(
    "path",
    [
        "app.tenant_id",
        "scanner.strict_cuba",
        "scoring.weights.relevancia_cuba",
        "generation.factual_min_chars",
        "llm.max_attempts",
        "images.provider",
        "facebook.cooldown_minutes",
        "publishing.auto_schedule_end_hour",
        "database.driver",
        "logging.level",
    ],
)
def test_implicit_keys_are_defined(path: str) -> None:
    schema_keys = {entry["name"] for entry in iter_field_docs(DEFAULT_CONFIG) if not entry.get("is_nested")}
    assert path in schema_keys


def test_cli_explain_masks_secrets(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[llm]\nopenai_api_key = \"sk-secreta\"\n", encoding="utf-8")

    assert main(["--config", str(config_file), "--explain", "llm.openai_api_key"]) == 0

    output = capsys.readouterr().out
    assert "sk-secreta" not in output
    assert "***masked***" in output
    assert "file" in output


def test_cli_set_validates_and_persists(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("", encoding="utf-8")

    assert main(["--config", str(config_file), "--set", "scanner.strict_cuba=false"]) == 0
    assert "scanner.strict_cuba: true -> false" in capsys.readouterr().out
    assert load_config(config_file, environ={}).scanner.strict_cuba is False

    assert main(["--config", str(config_file), "--set", "scanner.per_source_cap=99"]) == 1
    assert "per_source_cap" in capsys.readouterr().err
