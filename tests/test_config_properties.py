"""Property-based tests for configuration models and loading."""

from pathlib import Path

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import ValidationError

from synchub.models import AppConfig, JournalConfig, SourceConfig, SyncSettings
from synchub.utils.config_loader import ConfigLoader, ConfigurationError

log = structlog.stdlib.get_logger()

REPO_CONFIG_DIR = Path(__file__).parent.parent / "config"


@given(st.sampled_from(["none", "major_only", "all", "verbose"]))
def test_journal_levels_are_accepted(level: str):
    log.info("test_journal_levels_are_accepted", level=level)
    assert JournalConfig(level=level).level == level


@given(st.text(max_size=12).filter(lambda s: s not in {"none", "major_only", "all", "verbose"}))
@settings(max_examples=30)
def test_unknown_journal_levels_are_rejected(level: str):
    log.info("test_unknown_journal_levels_are_rejected", level=level)

    with pytest.raises(ValidationError):
        JournalConfig(level=level)


@given(st.integers(min_value=6, max_value=100))
@settings(max_examples=20)
def test_excerpt_limit_cannot_exceed_five(limit: int):
    log.info("test_excerpt_limit_cannot_exceed_five", limit=limit)

    with pytest.raises(ValidationError):
        SyncSettings(excerpt_limit=limit)


def test_source_config_requires_collection():
    log.info("test_source_config_requires_collection")

    with pytest.raises(ValidationError):
        SourceConfig(token="t")

    config = SourceConfig(collection="Readwise")
    assert config.enabled and config.token is None and config.require_children is None


def test_environment_variables_override_defaults(monkeypatch: pytest.MonkeyPatch):
    log.info("test_environment_variables_override_defaults")

    monkeypatch.setenv("SYNCHUB_SYNC__REQUEST_TIMEOUT", "12")
    monkeypatch.setenv("SYNCHUB_JOURNAL__LEVEL", "verbose")
    monkeypatch.setenv("SYNCHUB_CURSOR_PATH", "/tmp/cursors.json")

    config = AppConfig()

    assert config.sync.request_timeout == 12
    assert config.journal.level == "verbose"
    assert config.cursor_path == "/tmp/cursors.json"


def test_repository_default_config_loads():
    log.info("test_repository_default_config_loads")

    config = ConfigLoader().load_config(str(REPO_CONFIG_DIR / "default.yaml"))

    assert set(config.sources) == {"readwise", "github", "google-contacts"}
    assert config.sources["readwise"].excluded_categories == ["rss"]
    assert config.journal.level == "major_only"


def test_placeholders_are_substituted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    log.info("test_placeholders_are_substituted")

    monkeypatch.setenv("READWISE_TOKEN", "from-env")
    path = tmp_path / "default.yaml"
    path.write_text(
        "sources:\n"
        "  readwise:\n"
        "    token: ${READWISE_TOKEN}\n"
        "    collection: Reading ${READWISE_TOKEN}\n"
    )

    config = ConfigLoader().load_config(str(path))

    assert config.sources["readwise"].token == "from-env"
    assert config.sources["readwise"].collection == "Reading from-env"


def test_missing_placeholder_variable_is_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    log.info("test_missing_placeholder_variable_is_an_error")

    monkeypatch.delenv("SYNCHUB_TEST_UNSET", raising=False)
    path = tmp_path / "default.yaml"
    path.write_text("sources:\n  readwise:\n    token: ${SYNCHUB_TEST_UNSET}\n    collection: R\n")

    with pytest.raises(ConfigurationError, match="SYNCHUB_TEST_UNSET"):
        ConfigLoader().load_config(str(path))


@pytest.mark.parametrize(
    "content",
    ["", "sources: [unclosed\n", "- just\n- a list\n", "journal:\n  level: loud\n"],
)
def test_invalid_files_raise_configuration_error(tmp_path: Path, content: str):
    log.info("test_invalid_files_raise_configuration_error")

    path = tmp_path / "broken.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(path))


def test_missing_file_raises_configuration_error(tmp_path: Path):
    log.info("test_missing_file_raises_configuration_error")

    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(tmp_path / "absent.yaml"))


def test_environment_selects_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    log.info("test_environment_selects_config_file")

    (tmp_path / "default.yaml").write_text("storage_path: default.json\n")
    (tmp_path / "staging.yaml").write_text("storage_path: staging.json\n")
    loader = ConfigLoader(config_dir=tmp_path)

    monkeypatch.setenv("SYNCHUB_ENV", "staging")
    assert loader.load_config().storage_path == "staging.json"

    monkeypatch.setenv("SYNCHUB_ENV", "production")
    assert loader.load_config().storage_path == "default.json"


def test_validate_config_warns_about_tokens_and_unknown_sources():
    log.info("test_validate_config_warns_about_tokens_and_unknown_sources")

    config = AppConfig(
        sources={
            "readwise": SourceConfig(collection="R"),
            "pocket": SourceConfig(token="t", collection="P"),
            "github": SourceConfig(enabled=False, collection="G"),
        }
    )

    warnings = ConfigLoader().validate_config(config, known_sources=["readwise", "github"])

    assert len(warnings) == 2
    assert any("readwise" in w and "token" in w for w in warnings)
    assert any("pocket" in w and "not a known source" in w for w in warnings)
