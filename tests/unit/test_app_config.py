"""Unit tests for the app_config module."""
import os
from unittest.mock import patch, MagicMock

import pytest
import yaml

from xlf_translator.app_config import AppConfig, _build_job, _build_language_mappings, load_app_config
from xlf_translator.microsoft_translator import MicrosoftTranslator
from xlf_translator.openai_translator import OpenAITranslator
from xlf_translator.xlf_translator import FILENAME_POLICY_STRICT, FILENAME_POLICY_TOLERANT, TranslationJob


@pytest.fixture
def write_config(tmp_path):
    """Write a YAML config whose source_dir points at an existing directory."""
    source_dir = tmp_path / "translations"
    source_dir.mkdir()

    def _write(**overrides):
        config = {"source_dir": str(source_dir), "logging": {"log_file_path": ""}}
        config.update(overrides)
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump(config), encoding="utf-8")
        return str(config_path)

    _write.source_dir = str(source_dir)
    return _write


@pytest.fixture(autouse=True)
def mock_logger():
    with patch("xlf_translator.app_config.setup_logger", return_value=MagicMock()) as mocked:
        yield mocked


class TestAppConfig:
    """Test cases for the AppConfig dataclass."""

    def test_app_config_creation(self):
        translator = MagicMock()
        config = AppConfig(
            project_root="/test/root",
            source_dir="/test/translations",
            summary_report_path=None,
            job=TranslationJob(),
            provider="Microsoft",
            translator=translator
        )

        assert config.source_dir == "/test/translations"
        assert config.job.source_locale == "en_GB"
        assert config.translator is translator


class TestLoadAppConfig:
    """Test cases for the load_app_config function."""

    def test_microsoft_defaults(self, write_config):
        config_path = write_config()

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            config = load_app_config(config_path)

        assert isinstance(config.translator, MicrosoftTranslator)
        assert config.provider == "Microsoft"
        assert config.translator.region == "global"
        assert config.translator.category == "general"
        assert config.source_dir == write_config.source_dir
        assert config.job.commit is True
        assert config.job.filename_policy == FILENAME_POLICY_STRICT
        assert config.job.excluded_locales is None
        assert config.job.max_failures == 10

    def test_yaml_settings_are_applied(self, write_config):
        config_path = write_config(
            source_locale="en_US",
            locales=["de", "fr"],
            excluded_locales=["fr_CA"],
            catalogues="messages",
            dry_run=True,
            new_only=True,
            memory=True,
            filename_policy="tolerant",
            max_failures=3,
            failure_budget="consecutive",
            summary_report_path="report.md",
            translator={
                "provider": "microsoft",
                "region": "westeurope",
                "category": "tech",
                "options": {"profanityAction": "Marked"},
                "locale_map": {"en_US": "en", "de": "de"},
            },
        )

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            config = load_app_config(config_path)

        job = config.job
        assert job.source_locale == "en_US"
        assert job.locales == ("de", "fr")
        assert job.excluded_locales == ("fr_CA",)
        assert job.catalogues == ("messages",)
        assert job.commit is False
        assert job.new_only is True
        assert job.memory is True
        assert job.filename_policy == FILENAME_POLICY_TOLERANT
        assert job.max_failures == 3
        assert job.failure_budget == "consecutive"
        assert job.translate_options == {"profanityAction": "Marked"}
        assert config.summary_report_path == "report.md"
        assert config.translator.region == "westeurope"
        assert config.translator.category == "tech"
        assert config.translator.locale_map == {"en_US": "en", "de": "de"}

    def test_environment_overrides_file(self, write_config, tmp_path):
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        config_path = write_config(source_locale="en_US")

        env = {
            "MICROSOFT_SUBSCRIPTION_KEY": "secret",
            "MICROSOFT_SUBSCRIPTION_REGION": "uksouth",
            "XLF_SOURCE_DIR": str(other_dir),
            "XLF_SOURCE_LOCALE": "en_GB",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_app_config(config_path)

        assert config.source_dir == str(other_dir)
        assert config.job.source_locale == "en_GB"
        assert config.translator.region == "uksouth"

    def test_command_line_overrides_win(self, write_config):
        config_path = write_config(dry_run=False, locales=["de"])

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret", "XLF_SOURCE_LOCALE": "en_US"},
                        clear=True):
            config = load_app_config(config_path, {"dry_run": True, "source_locale": "en_GB", "locales": None})

        assert config.job.commit is False
        assert config.job.source_locale == "en_GB"
        # None means "not given on the command line".
        assert config.job.locales == ("de",)

    def test_config_file_from_environment(self, write_config):
        config_path = write_config(source_locale="de")

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret", "TRANSLATOR_CONFIG_FILE": config_path},
                        clear=True):
            config = load_app_config()

        assert config.job.source_locale == "de"

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path, monkeypatch):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("source_dir: [unclosed", encoding="utf-8")
        (tmp_path / "translations").mkdir()
        monkeypatch.chdir(tmp_path)

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            config = load_app_config(str(config_path))

        assert config.source_dir == "translations"

    def test_missing_subscription_key_exits(self, write_config):
        config_path = write_config()

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                load_app_config(config_path)

        assert exc_info.value.code == 1

    def test_missing_source_dir_exits(self, write_config, tmp_path):
        config_path = write_config(source_dir=str(tmp_path / "does-not-exist"))

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            with pytest.raises(SystemExit):
                load_app_config(config_path)

    def test_invalid_job_settings_exit(self, write_config):
        config_path = write_config(filename_policy="lenient")

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            with pytest.raises(SystemExit):
                load_app_config(config_path)

    def test_unknown_provider_exits(self, write_config):
        config_path = write_config(translator={"provider": "babelfish"})

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            with pytest.raises(SystemExit):
                load_app_config(config_path)

    def test_unknown_region_exits(self, write_config):
        config_path = write_config(translator={"region": "moon"})

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            with pytest.raises(SystemExit):
                load_app_config(config_path)

    def test_missing_excluded_words_file_exits(self, write_config, tmp_path):
        config_path = write_config(translator={"excluded_words_file": str(tmp_path / "missing.json")})

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            with pytest.raises(SystemExit):
                load_app_config(config_path)

    def test_openai_provider(self, write_config):
        config_path = write_config(
            translator={"provider": "openai", "model_name": "gpt-4o"},
            supported_locales=[{"code": "de", "name": "German"}, {"code": "en", "name": "English"}],
        )

        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True):
            config = load_app_config(config_path)

        assert isinstance(config.translator, OpenAITranslator)
        assert config.provider == "OpenAI"
        assert config.translator.model_name == "gpt-4o"
        assert config.translator.language_codes == {"de": "German", "en": "English"}

    def test_openai_provider_without_key_exits(self, write_config):
        config_path = write_config(translator={"provider": "openai"})

        with patch.dict(os.environ, {"MICROSOFT_SUBSCRIPTION_KEY": "secret"}, clear=True):
            with pytest.raises(SystemExit):
                load_app_config(config_path)


class TestHelpers:

    def test_build_language_mappings_skips_incomplete_entries(self):
        mappings = _build_language_mappings([
            {"code": "de", "name": "German"},
            {"code": "fr"},
            {"name": "Spanish"},
        ])

        assert mappings == {"de": "German"}

    def test_build_job_placeholder_patterns(self):
        job = _build_job({"translator": {"placeholder_patterns": [r"\{\w+\}"]}})

        assert job.placeholder_patterns == (r"\{\w+\}",)

    def test_build_job_empty_deny_list_is_kept(self):
        assert _build_job({"excluded_locales": []}).excluded_locales == ()
