"""lore configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (LORE_EMBEDDING_MODEL, LORE_GENERATION_MODEL, LORE_DB)
  3. Per-project lore.yaml  (working directory)
  4. Global ~/.lore/config.yaml  (no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".lore"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lore.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s). Leaves max_tokens alone.
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
        "database",
        "pipeline",
        "cleaning",
        "chunking",
        "embedding",
        "generation",
        "retrieval",
        "api",
    ]
)

# Declarations in the common languages: functions, classes, interfaces, types
# and const/let/var bound to a function. The first non-empty group is the name.
DEFAULT_DECLARATION_PATTERN = (
    r"^\s*(?:export\s+)?(?:default\s+)?(?:pub\s+)?(?:async\s+)?"
    r"(?:(?:function\*?|class|interface|type|def|fn|func)\s+([A-Za-z_$][\w$]*)"
    r"|(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*=\s*(?:async\s*)?(?:\(|function\b|[A-Za-z_$][\w$]*\s*=>))"
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
class DatabaseCfg:
    """Store location (lore.yaml: database:)."""

    path: str = ".lore.db"


@dataclass
class PipelineCfg:
    """Orchestrator cadence and stage toggles (lore.yaml: pipeline:).

    Attributes:
        poll_interval: Seconds to wait between ticks.
        batch_size: Upper bound on records each stage handles per tick.
        error_backoff: Seconds to wait after a failed tick.
        lease_ttl: Seconds after which another orchestrator's heartbeat is stale.
    """

    poll_interval: float = 10.0
    batch_size: int = 50
    error_backoff: float = 30.0
    enable_cleaning: bool = True
    enable_chunking: bool = True
    enable_embedding: bool = True
    lease_ttl: float = 120.0


@dataclass
class CleaningCfg:
    """Rejection thresholds (lore.yaml: cleaning:)."""

    min_chat_length: int = 3
    min_file_length: int = 10


@dataclass
class ChunkingCfg:
    """Chunk sizing (lore.yaml: chunking:)."""

    max_tokens: int = 800
    min_split_lines: int = 10
    declaration_pattern: str = DEFAULT_DECLARATION_PATTERN


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (lore.yaml: embedding:)."""

    model: str = "gemini/text-embedding-004"
    dimensions: int = 768
    provider_batch_limit: int = 100
    batch_delay: float = 0.1


@dataclass
class GenerationCfg:
    """Answer generation configuration (lore.yaml: generation:)."""

    model: str = "gemini/gemini-2.5-flash"
    temperature: float = 0.7
    max_tokens: int = 2048


@dataclass
class RetrievalCfg:
    """Similarity search configuration (lore.yaml: retrieval:)."""

    top_k: int = 5
    similarity_threshold: float = 0.0


@dataclass
class ApiCfg:
    """HTTP server binding (lore.yaml: api:)."""

    host: str = "127.0.0.1"
    port: int = 3001


@dataclass
class LoreConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    pipeline: PipelineCfg = field(default_factory=PipelineCfg)
    cleaning: CleaningCfg = field(default_factory=CleaningCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    api: ApiCfg = field(default_factory=ApiCfg)


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


def _validate(cfg: LoreConfig) -> None:
    if cfg.pipeline.batch_size < 1:
        raise ConfigError(f"pipeline.batch_size must be >= 1, got {cfg.pipeline.batch_size}")
    if cfg.pipeline.poll_interval < 0 or cfg.pipeline.error_backoff < 0:
        raise ConfigError("pipeline.poll_interval and pipeline.error_backoff must be >= 0")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.provider_batch_limit < 1:
        raise ConfigError(
            f"embedding.provider_batch_limit must be >= 1, got {cfg.embedding.provider_batch_limit}"
        )
    if cfg.chunking.max_tokens < 1:
        raise ConfigError(f"chunking.max_tokens must be >= 1, got {cfg.chunking.max_tokens}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    try:
        re.compile(cfg.chunking.declaration_pattern)
    except re.error as exc:
        raise ConfigError(f"chunking.declaration_pattern is not a valid regex: {exc}") from exc


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


def _parse_section(section: str, raw: Any, defaults: Any) -> Any:
    """Build a section dataclass from *raw*, coercing each value to the default's type."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{section}' must be a mapping, got {type(raw).__name__}")
    values: dict[str, Any] = {}
    for f in fields(defaults):
        default = getattr(defaults, f.name)
        if f.name not in raw:
            values[f.name] = default
            continue
        value = raw[f.name]
        try:
            if isinstance(default, bool):
                values[f.name] = value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes", "on")
            else:
                values[f.name] = type(default)(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {section}.{f.name}: {value!r}") from exc
    return type(defaults)(**values)


def _cfg_from_dict(data: dict[str, Any]) -> LoreConfig:
    """Build a *LoreConfig* from a merged raw YAML dict."""
    cfg = LoreConfig()
    for f in fields(cfg):
        if f.name in data:
            setattr(cfg, f.name, _parse_section(f.name, data[f.name] or {}, getattr(cfg, f.name)))
    return cfg


def _apply_env_overrides(cfg: LoreConfig) -> LoreConfig:
    """Apply LORE_* environment variable overrides (layer 2)."""
    if model := os.environ.get("LORE_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("LORE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("LORE_DB"):
        cfg.database.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LoreConfig:
    """Load and return a merged *LoreConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *lore.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value fails validation.
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
    """Create ``~/.lore/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        defaults = LoreConfig()
        content = (
            "# lore global configuration.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export GEMINI_API_KEY=...\n"
            "\n"
            "embedding:\n"
            f"  model: {defaults.embedding.model}\n"
            f"  dimensions: {defaults.embedding.dimensions}\n"
            "\n"
            "generation:\n"
            f"  model: {defaults.generation.model}\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
