"""Unit tests for the app_config module."""
import os
from unittest.mock import patch, MagicMock

import pytest
import yaml

from ltf_translator.app_config import AppConfig, _load_yaml_config, load_app_config
from ltf_translator.placeholder_sanitizer import NewlineMode
from ltf_translator.rejection_classifier import RejectionClassifier
from ltf_translator.translation_scheduler import (
    TRANSLATE_ALL_SCHEDULE,
    TRANSLATE_PAGE_SCHEDULE,
    ScheduleSettings
)


@pytest.fixture
def config_file(tmp_path):
    """Write a YAML configuration and return a loader bound to it."""
    def write(config):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(config), encoding="utf-8")
        return str(path)
    return write


def load_with_environment(config_path, environment):
    """Load the configuration with ``.env`` loading and logger setup patched out."""
    with patch("ltf_translator.app_config._load_dotenv_files"):
        with patch("ltf_translator.app_config.setup_logger") as mock_logger:
            mock_logger.return_value = MagicMock()
            with patch.dict(os.environ, dict(environment, TRANSLATOR_CONFIG_FILE=config_path), clear=True):
                return load_app_config()


class TestAppConfig:
    """Test cases for the AppConfig dataclass."""

    def test_translator_settings(self):
        config = AppConfig(
            project_root="/test/root",
            model_name="gpt-4o-mini",
            temperature=0.3,
            target_language="Indonesian",
            language_name="Bahasa Indonesia",
            dry_run=False,
            max_attempts=3,
            retry_base_delay=0.5,
            newline_mode=NewlineMode.PRESERVE,
            items_per_page=25,
            translate_all=ScheduleSettings(10, 2),
            translate_page=ScheduleSettings(5, 1),
            batch_requests=True,
            max_concurrent_api_calls=4,
            requests_per_minute=None,
            rejection_keywords=["mohon berikan"],
            rejection_patterns=[],
            openai_client=None
        )

        settings = config.translator_settings()

        assert settings.max_attempts == 3
        assert settings.newline_mode is NewlineMode.PRESERVE
        assert settings.translate_all == ScheduleSettings(10, 2)
        assert settings.items_per_page == 25
        assert settings.batch_requests is True
        assert isinstance(settings.classifier, RejectionClassifier)
        assert settings.classifier("Mohon berikan teks lengkap.")


class TestLoadAppConfig:
    """Test cases for the load_app_config function."""

    def test_load_config_with_valid_yaml_file(self, config_file):
        path = config_file({
            "dry_run": True,
            "model_name": "gpt-4o",
            "target_language": "Javanese",
            "language_name": "Basa Jawa",
            "max_attempts": 4,
            "newline_mode": "preserve",
            "items_per_page": 30,
            "translate_all": {"batch_size": 20, "concurrent_batches": 4},
            "requests_per_minute": 120,
            "rejection": {"keywords": ["ora iso"], "patterns": [r"\bora\b"]},
        })

        config = load_with_environment(path, {})

        assert config.dry_run is True
        assert config.model_name == "gpt-4o"
        assert config.target_language == "Javanese"
        assert config.language_name == "Basa Jawa"
        assert config.max_attempts == 4
        assert config.newline_mode is NewlineMode.PRESERVE
        assert config.items_per_page == 30
        assert config.translate_all == ScheduleSettings(20, 4)
        assert config.translate_page == TRANSLATE_PAGE_SCHEDULE
        assert config.requests_per_minute == 120
        assert config.rejection_keywords == ["ora iso"]
        assert config.rejection_patterns == [r"\bora\b"]
        assert config.openai_client is None

    def test_load_config_with_missing_file_uses_defaults(self, tmp_path):
        with patch("ltf_translator.app_config.AsyncOpenAI"):
            config = load_with_environment(str(tmp_path / "missing.yaml"), {"OPENAI_API_KEY": "sk-test"})

        assert config.model_name == "gpt-4o-mini"
        assert config.dry_run is False
        assert config.max_attempts == 2
        assert config.newline_mode is NewlineMode.SPACE
        assert config.translate_all == TRANSLATE_ALL_SCHEDULE
        assert config.max_concurrent_api_calls == 16
        assert config.requests_per_minute is None
        assert config.language_name == "Bahasa Indonesia"

    def test_load_config_with_environment_overrides(self, config_file):
        path = config_file({"dry_run": True, "model_name": "gpt-4o", "max_attempts": 2})

        config = load_with_environment(path, {"MODEL_NAME": "gpt-4.1-mini", "MAX_TRANSLATION_ATTEMPTS": "5"})

        assert config.model_name == "gpt-4.1-mini"
        assert config.max_attempts == 5

    def test_dry_run_override(self, config_file):
        path = config_file({"dry_run": False})

        with patch("ltf_translator.app_config._load_dotenv_files"):
            with patch("ltf_translator.app_config.setup_logger"):
                with patch.dict(os.environ, {"TRANSLATOR_CONFIG_FILE": path}, clear=True):
                    config = load_app_config(dry_run_override=True)

        assert config.dry_run is True
        assert config.openai_client is None

    def test_openai_client_creation_with_api_key(self, config_file):
        path = config_file({"dry_run": False})

        with patch("ltf_translator.app_config.AsyncOpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_openai.return_value = mock_client
            config = load_with_environment(path, {"OPENAI_API_KEY": "sk-test-key"})

        mock_openai.assert_called_once_with(api_key="sk-test-key")
        assert config.openai_client == mock_client

    def test_missing_openai_key_exits_in_production_mode(self, config_file):
        path = config_file({"dry_run": False})

        with pytest.raises(SystemExit):
            load_with_environment(path, {})

    def test_invalid_newline_mode(self, config_file):
        path = config_file({"dry_run": True, "newline_mode": "crlf"})

        with pytest.raises(ValueError):
            load_with_environment(path, {})


class TestLoadYamlConfig:
    """Test cases for reading the configuration file."""

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text("dry_run: [unclosed", encoding="utf-8")

        with patch.dict(os.environ, {"TRANSLATOR_CONFIG_FILE": str(path)}):
            assert _load_yaml_config(str(tmp_path)) == {}
        assert "Invalid YAML" in capsys.readouterr().err

    def test_non_mapping_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with patch.dict(os.environ, {"TRANSLATOR_CONFIG_FILE": str(path)}):
            assert _load_yaml_config(str(tmp_path)) == {}

    def test_default_path_is_project_root(self, tmp_path):
        (tmp_path / "config.yaml").write_text("model_name: gpt-4o\n", encoding="utf-8")

        with patch.dict(os.environ, {}, clear=True):
            assert _load_yaml_config(str(tmp_path)) == {"model_name": "gpt-4o"}
