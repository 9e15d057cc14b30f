"""Tests for Spock configuration system."""

import json
import os
import tempfile

import pytest

from asynchro.core.flux_capacitor import FluxCapacitor, FluxCapacitorConfig
from asynchro.core.spock.spock import ConfigManager, Spock


def _write_config(config_data) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
        json.dump(config_data, f)
        return f.name


class TestSpockBasics:
    """Test basic Spock functionality."""

    def test_spock_initialization(self):
        """Test that Spock can be initialized with and without config path."""
        # Without config path
        spock = ConfigManager()
        assert spock is not None
        assert not spock.is_loaded
        assert spock.config_path is None

        # With config path
        spock_with_path = ConfigManager(config_path="/path/to/config.json")
        assert spock_with_path.config_path == "/path/to/config.json"
        assert not spock_with_path.is_loaded

    def test_unknown_section(self):
        spock = Spock(use_dotenv=False)
        with pytest.raises(KeyError, match="Unknown configuration section"):
            spock.get_config("plugins")
        with pytest.raises(KeyError):
            spock.set_config("plugins", "key", "value")


class TestSpockJSONConfiguration:
    """Test JSON configuration loading."""

    def test_load_valid_json(self):
        """Test loading valid JSON configuration."""
        config_path = _write_config(
            {
                "queue": {"throws": "system", "message_delimiter": "|"},
                "adapters": {"events_timeout_ms": 250},
            }
        )

        try:
            spock = Spock(config_path=config_path, use_dotenv=False)
            spock.load()

            assert spock.is_loaded
            assert spock.get_queue_config("throws") == "system"
            assert spock.get_queue_config("message_delimiter") == "|"
            assert spock.get_adapters_config("events_timeout_ms") == 250
        finally:
            os.unlink(config_path)

    def test_load_missing_file(self):
        """Test that missing config file doesn't crash."""
        spock = Spock(config_path="/nonexistent/config.json", use_dotenv=False)
        spock.load()  # Should not raise

        assert spock.is_loaded
        assert spock.get_queue_config() == {}
        assert spock.get_adapters_config() == {}

    def test_load_invalid_json(self):
        """Test that invalid JSON raises error."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            f.write("{ invalid json }")
            config_path = f.name

        try:
            spock = Spock(config_path=config_path, use_dotenv=False)
            with pytest.raises(ValueError, match="Invalid JSON"):
                spock.load()
        finally:
            os.unlink(config_path)

    def test_section_must_be_object(self):
        config_path = _write_config({"queue": ["not", "an", "object"]})

        try:
            spock = Spock(config_path=config_path, use_dotenv=False)
            with pytest.raises(ValueError, match="'queue' section must be a JSON object"):
                spock.load()
        finally:
            os.unlink(config_path)

    def test_load_dict_over_json(self):
        config_path = _write_config({"queue": {"throws": True, "message_delimiter": ";"}})

        try:
            spock = Spock(config_path=config_path, use_dotenv=False)
            spock.load({"queue": {"throws": False}})

            assert spock.get_queue_config("throws") is False
            assert spock.get_queue_config("message_delimiter") == ";"
        finally:
            os.unlink(config_path)


class TestSpockEnvironmentVariables:
    """Test environment variable configuration."""

    def test_load_from_env_queue_section(self):
        """Test loading queue settings from environment."""
        os.environ["ASYNCHRO__QUEUE__THROWS"] = '"system"'
        os.environ["ASYNCHRO__QUEUE__INCLUDE_ERROR_MESSAGES"] = "true"

        try:
            spock = Spock(use_dotenv=False)
            spock.load()

            assert spock.get_queue_config("throws") == "system"
            assert spock.get_queue_config("include_error_messages") is True  # Boolean
        finally:
            del os.environ["ASYNCHRO__QUEUE__THROWS"]
            del os.environ["ASYNCHRO__QUEUE__INCLUDE_ERROR_MESSAGES"]

    def test_load_from_env_adapters_section(self):
        """Test loading adapter settings from environment."""
        os.environ["ASYNCHRO__ADAPTERS__EVENTS_TIMEOUT_MS"] = "5000"

        try:
            spock = Spock(use_dotenv=False)
            spock.load()

            assert spock.get_adapters_config("events_timeout_ms") == 5000  # Should be parsed as int
        finally:
            del os.environ["ASYNCHRO__ADAPTERS__EVENTS_TIMEOUT_MS"]

    def test_env_overrides_json(self):
        """Test that environment variables override JSON values."""
        config_path = _write_config({"queue": {"message_delimiter": ";"}})
        os.environ["ASYNCHRO__QUEUE__MESSAGE_DELIMITER"] = "|"

        try:
            spock = Spock(config_path=config_path, use_dotenv=False)
            spock.load()

            # Environment should override JSON
            assert spock.get_queue_config("message_delimiter") == "|"
        finally:
            os.unlink(config_path)
            del os.environ["ASYNCHRO__QUEUE__MESSAGE_DELIMITER"]

    def test_parse_json_in_env_value(self):
        """Test parsing JSON objects in env values."""
        os.environ["ASYNCHRO__QUEUE__THROWS"] = '{"invert": true, "matches": "system"}'

        try:
            spock = Spock(use_dotenv=False)
            spock.load()

            assert spock.get_queue_config("throws") == {"invert": True, "matches": "system"}
        finally:
            del os.environ["ASYNCHRO__QUEUE__THROWS"]

    def test_invalid_section_in_env_is_ignored(self):
        os.environ["ASYNCHRO__PLUGINS__KEY"] = "value"

        try:
            spock = Spock(use_dotenv=False)
            spock.load()

            assert set(spock.get_all_config()) == {"queue", "adapters"}
        finally:
            del os.environ["ASYNCHRO__PLUGINS__KEY"]


class TestSpockSettersAndReload:
    """Test runtime changes and reload."""

    def test_set_config_at_runtime(self):
        spock = Spock(use_dotenv=False)
        spock.load()

        spock.set_config("queue", "throws", True)
        assert spock.get_queue_config("throws") is True

    def test_reload_picks_up_env_changes(self):
        """Test that reload picks up new environment variables."""
        spock = Spock(use_dotenv=False)
        spock.load()
        assert spock.get_queue_config("message_delimiter") is None

        os.environ["ASYNCHRO__QUEUE__MESSAGE_DELIMITER"] = "/"

        try:
            spock.reload()

            assert spock.is_loaded
            assert spock.get_queue_config("message_delimiter") == "/"
        finally:
            del os.environ["ASYNCHRO__QUEUE__MESSAGE_DELIMITER"]

    def test_get_all_config_is_a_copy(self):
        spock = Spock(use_dotenv=False)
        spock.load({"queue": {"throws": True}})

        snapshot = spock.get_all_config()
        snapshot["queue"]["throws"] = False

        assert spock.get_queue_config("throws") is True


class TestQueueDefaultsFromSpock:
    """FluxCapacitorConfig built from the queue section."""

    def test_defaults_without_spock(self):
        config = FluxCapacitorConfig.from_spock(None)
        assert config.throws is None
        assert config.message_delimiter == ","
        assert config.include_error_messages is False

    @pytest.mark.asyncio
    async def test_queue_uses_spock_defaults(self):
        spock = Spock(use_dotenv=False)
        spock.load(
            {"queue": {"throws": "system", "message_delimiter": "|", "include_error_messages": True}}
        )
        config = FluxCapacitorConfig.from_spock(spock)

        queue = FluxCapacitor({}, config=config)
        assert queue.throws_error(TypeError) is True
        assert queue.throws_error(RuntimeError) is False

        async def fail():
            raise RuntimeError("kept")

        async def hello():
            return "hello"

        queue.series("fail", fail)
        queue.series("hello", hello)
        await queue.run()

        assert queue.messages() == "kept|hello"

    def test_explicit_throws_wins(self):
        config = FluxCapacitorConfig(throws=True)
        queue = FluxCapacitor({}, False, config=config)
        assert queue.throws_error(RuntimeError) is False
