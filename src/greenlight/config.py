"""Greenlight configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (GREENLIGHT_GENERATION_MODEL, GREENLIGHT_EMBEDDING_MODEL,
                             GREENLIGHT_ORGANIZATION)
  3. Per-project greenlight.yaml  (next to .greenlight.db)
  4. Global ~/.greenlight/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".greenlight"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "greenlight.yaml"

# Fields that suggest an API key, forbidden in global config.
# Does NOT match legitimate keys like max_tokens, overlap_tokens, min_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "organization",
        "generation",
        "embedding",
        "chunking",
        "grouping",
        "confidence",
        "triage",
        "retrieval",
        "categorization",
        "ingestion",
    ]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class GenerationCfg:
    """Language-model configuration (greenlight.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    timeout: float = 30.0
    num_retries: int = 3


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (greenlight.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 16


@dataclass
class ChunkingCfg:
    """Chunker sizes in estimated tokens (greenlight.yaml: chunking:)."""

    max_tokens: int = 500
    overlap_tokens: int = 50
    min_tokens: int = 50


@dataclass
class GroupingCfg:
    """Temporal grouping limits (greenlight.yaml: grouping:)."""

    max_group_size: int = 10
    time_threshold_seconds: int = 3600


@dataclass
class TriageCfg:
    """Triage band thresholds (greenlight.yaml: triage:)."""

    green: float = 0.8
    yellow: float = 0.5


@dataclass
class RetrievalCfg:
    """RAG retrieval defaults (greenlight.yaml: retrieval:)."""

    max_sources: int = 5
    similarity_threshold: float = 0.7


@dataclass
class CategorizationCfg:
    """Category suggestion and batch pacing (greenlight.yaml: categorization:)."""

    default_category: str = "General Documents"
    batch_size: int = 5
    interval_seconds: float = 1.0


@dataclass
class IngestionCfg:
    """Background ingestion job pool (greenlight.yaml: ingestion:)."""

    workers: int = 2


@dataclass
class GreenlightConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    organization: str = "default"
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    grouping: GroupingCfg = field(default_factory=GroupingCfg)
    confidence_weights: dict[str, float] = field(default_factory=dict)
    triage: TriageCfg = field(default_factory=TriageCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    categorization: CategorizationCfg = field(default_factory=CategorizationCfg)
    ingestion: IngestionCfg = field(default_factory=IngestionCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: GreenlightConfig) -> None:
    if not 0.0 <= cfg.triage.yellow <= cfg.triage.green <= 1.0:
        raise ConfigError(
            f"triage thresholds must satisfy 0 <= yellow <= green <= 1 "
            f"(got yellow={cfg.triage.yellow}, green={cfg.triage.green})"
        )
    for name, weight in cfg.confidence_weights.items():
        if weight < 0:
            raise ConfigError(f"confidence weight '{name}' must be >= 0, got {weight}")
    if cfg.chunking.max_tokens < 1:
        raise ConfigError("chunking.max_tokens must be >= 1")
    if cfg.grouping.max_group_size < 1:
        raise ConfigError("grouping.max_group_size must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> GreenlightConfig:
    """Build a *GreenlightConfig* from a merged raw YAML dict."""
    cfg = GreenlightConfig()

    if "organization" in data:
        cfg.organization = str(data["organization"])

    if "generation" in data:
        g = data["generation"]
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            timeout=float(g.get("timeout", cfg.generation.timeout)),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
        )

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "chunking" in data:
        c = data["chunking"]
        cfg.chunking = ChunkingCfg(
            max_tokens=int(c.get("max_tokens", cfg.chunking.max_tokens)),
            overlap_tokens=int(c.get("overlap_tokens", cfg.chunking.overlap_tokens)),
            min_tokens=int(c.get("min_tokens", cfg.chunking.min_tokens)),
        )

    if "grouping" in data:
        gr = data["grouping"]
        cfg.grouping = GroupingCfg(
            max_group_size=int(gr.get("max_group_size", cfg.grouping.max_group_size)),
            time_threshold_seconds=int(
                gr.get("time_threshold_seconds", cfg.grouping.time_threshold_seconds)
            ),
        )

    if "confidence" in data:
        weights = (data["confidence"] or {}).get("weights", {}) or {}
        cfg.confidence_weights = {str(k): float(v) for k, v in weights.items()}

    if "triage" in data:
        t = data["triage"]
        cfg.triage = TriageCfg(
            green=float(t.get("green", cfg.triage.green)),
            yellow=float(t.get("yellow", cfg.triage.yellow)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            max_sources=int(r.get("max_sources", cfg.retrieval.max_sources)),
            similarity_threshold=float(
                r.get("similarity_threshold", cfg.retrieval.similarity_threshold)
            ),
        )

    if "categorization" in data:
        ca = data["categorization"]
        cfg.categorization = CategorizationCfg(
            default_category=str(
                ca.get("default_category", cfg.categorization.default_category)
            ),
            batch_size=int(ca.get("batch_size", cfg.categorization.batch_size)),
            interval_seconds=float(
                ca.get("interval_seconds", cfg.categorization.interval_seconds)
            ),
        )

    if "ingestion" in data:
        i = data["ingestion"]
        cfg.ingestion = IngestionCfg(workers=int(i.get("workers", cfg.ingestion.workers)))

    return cfg


def _apply_env_overrides(cfg: GreenlightConfig) -> GreenlightConfig:
    """Apply GREENLIGHT_* environment variable overrides."""
    if model := os.environ.get("GREENLIGHT_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("GREENLIGHT_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if org := os.environ.get("GREENLIGHT_ORGANIZATION"):
        cfg.organization = org
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> GreenlightConfig:
    """Load and return a merged *GreenlightConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *greenlight.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            threshold/weight value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
