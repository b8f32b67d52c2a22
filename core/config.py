"""
Configuration for the correlation engine.

Configuration is built once and passed to CorrelationEngine at construction.
Every field has a working default, so CorrelationConfig() alone is valid.

YAML layout (all sections optional, unknown keys ignored):

    correlation:
      scanner:
        root: ~/.claude/projects
        max_workers: 8
      evidence:
        tail_size: 3
        keywords: [commit]
      classifier:
        provider: openai
        model: gpt-4o-mini
        timeout_seconds: 30
        providers:
          openai: {api_key: ...}
          ollama: {base_url: http://localhost:11434}
      budget:
        max_tokens: 120000
      redaction:
        redact_emails: true
        allowed_email_domains: [users.noreply.github.com]
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from core.sensitive_data import RedactionConfig

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPT_ROOT = "~/.claude/projects"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "correlation_config.yaml"


def _from_section(cls, section: Optional[Dict[str, Any]]):
    """Instantiate a config dataclass from a dict, ignoring unknown keys."""
    if not section:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        logger.debug(f"Ignoring unknown {cls.__name__} keys: {unknown}")
    return cls(**{k: v for k, v in section.items() if k in known})


@dataclass
class ScannerConfig:
    """Transcript discovery and reading."""
    root: str = DEFAULT_TRANSCRIPT_ROOT
    max_workers: int = 8

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser()


@dataclass
class EvidenceConfig:
    """Commit-action evidence detection."""
    tail_size: int = 3
    keywords: Tuple[str, ...] = ("commit",)

    def __post_init__(self):
        self.keywords = tuple(self.keywords)


@dataclass
class ClassifierConfig:
    """Reasoning-service call used to pick sessions."""
    provider: str = "openai"
    model: Optional[str] = None
    timeout_seconds: float = 30.0
    temperature: float = 0.1
    max_tokens: int = 1000
    tail_events: int = 5
    preview_chars: int = 100
    providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_provider_config(self) -> Dict[str, Any]:
        """Build the dict accepted by core.llm_provider.get_provider()."""
        config: Dict[str, Any] = {
            "provider": self.provider,
            "timeout": self.timeout_seconds,
        }
        if self.model:
            config["model"] = self.model
        for name, section in self.providers.items():
            config[name] = dict(section or {})
        return config


@dataclass
class BudgetConfig:
    """Token budget for the returned context."""
    max_tokens: int = 120000
    prompt_overhead_tokens: int = 2000
    min_recent_events: int = 5
    chars_per_token: int = 4


@dataclass
class CorrelationConfig:
    """Top-level engine configuration."""
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    evidence: EvidenceConfig = field(default_factory=EvidenceConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    redaction: RedactionConfig = field(default_factory=RedactionConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CorrelationConfig":
        """
        Build configuration from a plain dict (e.g. parsed YAML).

        Accepts either the bare sections or a document with a top-level
        "correlation" key.
        """
        data = data or {}
        data = data.get("correlation", data)

        redaction_section = dict(data.get("redaction") or {})
        if "allowed_email_domains" in redaction_section:
            redaction_section["allowed_email_domains"] = {
                domain.lower() for domain in redaction_section["allowed_email_domains"] or []
            }

        return cls(
            scanner=_from_section(ScannerConfig, data.get("scanner")),
            evidence=_from_section(EvidenceConfig, data.get("evidence")),
            classifier=_from_section(ClassifierConfig, data.get("classifier")),
            budget=_from_section(BudgetConfig, data.get("budget")),
            redaction=_from_section(RedactionConfig, redaction_section),
        )


def load_config(config_path: Optional[Union[str, Path]] = None) -> CorrelationConfig:
    """
    Load engine configuration from a YAML file.

    Args:
        config_path: Path to config YAML (uses default if None)

    Returns:
        CorrelationConfig

    Raises:
        FileNotFoundError: If the file does not exist
    """
    import yaml

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    config = CorrelationConfig.from_dict(data)
    logger.info(f"Loaded correlation config from {config_path}")
    return config
