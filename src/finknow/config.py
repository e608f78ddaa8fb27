"""finknow configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (FINKNOW_EMBEDDING_MODEL, FINKNOW_DB)
  3. Per-project finknow.yaml
  4. Global ~/.finknow/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".finknow"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "finknow.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s). Does NOT match max_tokens etc.
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
    ["embedding", "retrieval", "chunking", "database"]
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
class EmbeddingCfg:
    """Embedding provider configuration (finknow.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout: float = 30.0


@dataclass
class RetrievalCfg:
    """Query defaults (finknow.yaml: retrieval:).

    Attributes:
        limit: Default row limit for a single-pool search.
        threshold: Default per-pool similarity threshold (strict ``>``).
        merge_threshold: Final relevance gate applied when pools are merged.
        personal_limit: Combined search — rows from personal knowledge.
        goals_limit: Combined search — rows from personal goals.
        general_limit: Combined search — rows from general knowledge.
        candidate_window: Initial KNN window before filters are applied.
    """

    limit: int = 5
    threshold: float = 0.1
    merge_threshold: float = 0.5
    personal_limit: int = 2
    goals_limit: int = 2
    general_limit: int = 3
    candidate_window: int = 64


@dataclass
class ChunkingCfg:
    """Sentence chunker thresholds, in characters (finknow.yaml: chunking:)."""

    short_text_chars: int = 200
    max_chunk_chars: int = 300
    min_fragment_chars: int = 10


@dataclass
class DatabaseCfg:
    """Knowledge store location (finknow.yaml: database:)."""

    path: str = ".finknow.db"
    timeout: float = 10.0


@dataclass
class FinknowConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)


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
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: FinknowConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(
            f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}"
        )
    for name in ("threshold", "merge_threshold"):
        value = getattr(cfg.retrieval, name)
        if not -1.0 <= value <= 1.0:
            raise ConfigError(f"retrieval.{name} must be in [-1, 1], got {value}")
    for name in ("limit", "personal_limit", "goals_limit", "general_limit"):
        if getattr(cfg.retrieval, name) < 0:
            raise ConfigError(f"retrieval.{name} must be >= 0")
    if cfg.retrieval.candidate_window < 1:
        raise ConfigError("retrieval.candidate_window must be >= 1")
    ch = cfg.chunking
    if min(ch.short_text_chars, ch.max_chunk_chars) < 1 or ch.min_fragment_chars < 0:
        raise ConfigError("chunking thresholds must be positive")


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


def _cfg_from_dict(data: dict[str, Any]) -> FinknowConfig:
    """Build a *FinknowConfig* from a merged raw YAML dict."""
    cfg = FinknowConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            limit=int(r.get("limit", d.limit)),
            threshold=float(r.get("threshold", d.threshold)),
            merge_threshold=float(r.get("merge_threshold", d.merge_threshold)),
            personal_limit=int(r.get("personal_limit", d.personal_limit)),
            goals_limit=int(r.get("goals_limit", d.goals_limit)),
            general_limit=int(r.get("general_limit", d.general_limit)),
            candidate_window=int(r.get("candidate_window", d.candidate_window)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        d = cfg.chunking
        cfg.chunking = ChunkingCfg(
            short_text_chars=int(c.get("short_text_chars", d.short_text_chars)),
            max_chunk_chars=int(c.get("max_chunk_chars", d.max_chunk_chars)),
            min_fragment_chars=int(c.get("min_fragment_chars", d.min_fragment_chars)),
        )

    if "database" in data:
        db = data["database"] or {}
        cfg.database = DatabaseCfg(
            path=str(db.get("path", cfg.database.path)),
            timeout=float(db.get("timeout", cfg.database.timeout)),
        )

    return cfg


def _apply_env_overrides(cfg: FinknowConfig) -> FinknowConfig:
    """Apply FINKNOW_* environment variable overrides."""
    if model := os.environ.get("FINKNOW_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("FINKNOW_DB"):
        cfg.database.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> FinknowConfig:
    """Load and return a merged *FinknowConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *finknow.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range.
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

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.finknow/config.yaml`` with defaults if it does not exist.

    Parent directory gets mode 0o700, the file 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# finknow global configuration — defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "retrieval:\n"
            "  threshold: 0.1\n"
            "  merge_threshold: 0.5\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
