"""
Tests for configuration loading and run metrics.
"""

import time

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

import core
from core.config import DEFAULT_CONFIG_PATH, CorrelationConfig, load_config
from core.metrics import PhaseTimer, RunStats, RunStatus


class TestCorrelationConfig:
    """Tests for CorrelationConfig."""

    def test_defaults(self):
        config = CorrelationConfig()

        assert config.scanner.max_workers == 8
        assert config.scanner.root_path == Path("~/.claude/projects").expanduser()
        assert config.evidence.tail_size == 3
        assert config.evidence.keywords == ("commit",)
        assert config.classifier.provider == "openai"
        assert config.classifier.timeout_seconds == 30.0
        assert config.budget.max_tokens == 120000
        assert config.redaction.enabled

    def test_from_dict_with_unknown_keys(self):
        config = CorrelationConfig.from_dict({
            "scanner": {"root": "/data/transcripts", "max_workers": 2, "colour": "blue"},
            "evidence": {"keywords": ["commit", "push"]},
            "budget": {"max_tokens": 5000},
            "redaction": {"allowed_email_domains": ["Users.NoReply.GitHub.com"]},
            "unrelated": True,
        })

        assert config.scanner.root == "/data/transcripts"
        assert config.scanner.max_workers == 2
        assert config.evidence.keywords == ("commit", "push")
        assert config.budget.max_tokens == 5000
        assert config.budget.min_recent_events == 5
        assert config.redaction.allowed_email_domains == {"users.noreply.github.com"}

    def test_provider_config(self):
        config = CorrelationConfig.from_dict({"classifier": {
            "provider": "ollama",
            "model": "llama3.1",
            "timeout_seconds": 12,
            "providers": {"ollama": {"base_url": "http://gpu-box:11434"}},
        }})

        provider_config = config.classifier.to_provider_config()

        assert provider_config == {
            "provider": "ollama",
            "timeout": 12,
            "model": "llama3.1",
            "ollama": {"base_url": "http://gpu-box:11434"},
        }

    def test_none_is_defaults(self):
        assert CorrelationConfig.from_dict(None) == CorrelationConfig()


class TestLoadConfig:
    """Tests for YAML loading."""

    def test_load_nested_document(self, tmp_path):
        path = tmp_path / "correlation.yaml"
        path.write_text(
            "correlation:\n"
            "  classifier:\n"
            "    provider: anthropic\n"
            "  budget:\n"
            "    max_tokens: 64000\n"
        )

        config = load_config(path)

        assert config.classifier.provider == "anthropic"
        assert config.budget.max_tokens == 64000

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path) == CorrelationConfig()

    def test_bundled_default_file(self):
        config = load_config()

        assert config.classifier.model == "gpt-4o-mini"
        assert config.budget.max_tokens == 120000
        assert "users.noreply.github.com" in config.redaction.allowed_email_domains

    def test_default_file_ships_inside_package(self):
        assert DEFAULT_CONFIG_PATH.parent == Path(core.__file__).parent
        assert DEFAULT_CONFIG_PATH.is_file()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")


class TestRunStats:
    """Tests for RunStats and PhaseTimer."""

    def test_phase_timer_records(self):
        stats = RunStats.start()

        with PhaseTimer("scan", stats):
            time.sleep(0.01)
        with PhaseTimer("scan", stats):
            pass

        assert stats.phase_timings["scan"] >= 0.01

    def test_phase_timer_does_not_swallow(self):
        stats = RunStats.start()

        with pytest.raises(RuntimeError):
            with PhaseTimer("classification", stats):
                raise RuntimeError("boom")

        assert "classification" in stats.phase_timings

    def test_complete_and_to_dict(self):
        stats = RunStats.start()
        stats.record_classifier_call(120.0)
        stats.record_error("scan", ValueError("bad"))
        stats.complete(success=False)

        data = stats.to_dict()
        assert data["status"] == RunStatus.FAILED.value
        assert data["classifier_calls"] == 1
        assert data["errors"][0] == {"phase": "scan", "error_type": "ValueError", "message": "bad"}
        assert data["completed_at"] is not None
