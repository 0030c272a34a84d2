from pathlib import Path

import pytest
import yaml

from autoclipper_core.config_manager import AppConfig, ConfigManager


@pytest.fixture
def mock_config_file(tmp_path):
    """Creates a temporary config file."""
    config_data = {
        "paths": {
            "base_dir": str(tmp_path),
            "log_dir": str(tmp_path / "logs"),
        },
        "llm": {
            "provider": "openrouter",
            "model_name": "moonshotai/kimi-k2:free",
            "max_retries": 3,
            "stream": True,
        },
        "analysis": {
            "max_chunk_chars": 12000,
            "rubric": "mentorship",
            "overlap_strategy": "optimal",
        },
        "server": {"port": 4000},
    }

    config_path = tmp_path / "test_settings.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)

    return str(config_path)


def test_config_load_valid(mock_config_file):
    """Test loading a valid configuration file."""
    manager = ConfigManager(config_path=mock_config_file)
    assert isinstance(manager.config, AppConfig)
    assert manager.llm.provider == "openrouter"
    assert manager.llm.max_retries == 3
    assert manager.analysis.rubric == "mentorship"
    assert manager.analysis.overlap_strategy == "optimal"
    assert manager.server.port == 4000


def test_config_file_not_found():
    """Test that missing config file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        ConfigManager(config_path="non_existent.yaml")


def test_default_values(tmp_path):
    config_path = tmp_path / "minimal.yaml"
    config_path.write_text("")

    manager = ConfigManager(config_path=str(config_path))
    assert manager.llm.provider == "ollama"
    assert manager.llm.request_timeout_seconds == 120
    assert manager.llm.max_retries == 1
    assert manager.analysis.max_chunk_chars == 24000
    assert manager.analysis.overlap_seconds == 30
    assert manager.analysis.time_reference == "absolute"
    assert manager.paths.base_dir == "."


def test_api_keys_come_from_environment(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test")
    monkeypatch.setenv("OLLAMA_HOST", "http://gpu-box:11434")
    manager = ConfigManager.from_defaults()
    assert manager.llm.openrouter_api_key == "sk-or-test"
    assert manager.llm.ollama_host == "http://gpu-box:11434"


def test_invalid_provider_is_rejected():
    with pytest.raises(ValueError):
        ConfigManager.from_defaults({"llm": {"provider": "bard"}})


def test_shipped_settings_file_loads():
    manager = ConfigManager(config_path=str(Path(__file__).parent.parent / "config" / "settings.yaml"))
    assert manager.llm.model_name == "qwen2.5:7b-instruct"
    assert manager.analysis.clip_events is True
