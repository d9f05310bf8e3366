"""
Tests for config, config_loader and log modules.
"""

import json
import logging
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from quizlab.config import EngineConfig
from quizlab.config_loader import create_sample_config, load_config
from quizlab.log import StructuredFormatter
from quizlab.sandbox import SandboxConfig


class TestEngineConfig:
    """Test EngineConfig validation and dictionary form."""

    def test_default_is_valid(self):
        assert EngineConfig.default().validate() == (True, "")

    def test_dict_round_trip(self):
        config = EngineConfig(sandbox=SandboxConfig(timeout_ms=1000, max_steps=500),
                              checker="float_isclose", review_before_finish=True,
                              shuffle_seed=9, log_level="DEBUG")
        assert EngineConfig.from_dict(config.to_dict()) == config

    def test_unknown_checker(self):
        is_valid, message = EngineConfig(checker="fuzzy").validate()
        assert not is_valid
        assert "fuzzy" in message

    def test_invalid_sandbox_reported_with_prefix(self):
        is_valid, message = EngineConfig(sandbox=SandboxConfig(timeout_ms=0)).validate()
        assert not is_valid
        assert message.startswith("sandbox:")

    def test_shuffle_seed_must_be_integer(self):
        assert not EngineConfig(shuffle_seed="seven").validate()[0]
        assert not EngineConfig(shuffle_seed=True).validate()[0]

    def test_log_level_normalized(self):
        assert EngineConfig.from_dict({"log_level": "info"}).log_level == "INFO"
        assert not EngineConfig(log_level="LOUD").validate()[0]


class TestLoadConfig:
    """Test loading configuration files."""

    def test_missing_file_uses_defaults(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="quizlab"):
            config = load_config(tmp_path / "absent.json")
        assert config == EngineConfig.default()
        assert "not found" in caplog.text

    def test_valid_file(self, tmp_path):
        path = tmp_path / "quizlab.json"
        path.write_text(json.dumps({"checker": "ignore_case", "sandbox": {"timeout_ms": 2000}}))

        config = load_config(path)
        assert config.checker == "ignore_case"
        assert config.sandbox.timeout_ms == 2000
        assert config.sandbox.memory_limit_bytes == SandboxConfig.default().memory_limit_bytes

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "quizlab.json"
        path.write_text("{broken")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_config(path)

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "quizlab.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="top level"):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "quizlab.json"
        path.write_text(json.dumps({"sandbox": {"timeout_ms": 0}}))
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(path)

    def test_sample_config_loads(self, tmp_path):
        path = tmp_path / "sample.json"
        create_sample_config(path)

        data = json.loads(path.read_text())
        assert "_instructions" in data
        assert load_config(path) == EngineConfig.default()


class TestStructuredFormatter:
    """Test JSON log output."""

    def test_context_fields_included(self):
        record = logging.LogRecord("quizlab.engine", logging.INFO, __file__, 10,
                                   "ANSWER %s", ("q1",), None)
        record.event = "ANSWER"
        record.quiz_id = "intro"
        record.correct = True

        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "ANSWER q1"
        assert data["level"] == "INFO"
        assert data["event"] == "ANSWER"
        assert data["quiz_id"] == "intro"
        assert data["correct"] is True
        assert "lab_id" not in data

    def test_exception_included(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            record = logging.LogRecord("quizlab", logging.ERROR, __file__, 1, "failed", (),
                                       sys.exc_info())

        data = json.loads(StructuredFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad value"
