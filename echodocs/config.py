"""Configuration loading for echodocs (.echodocs.yml) and per-run options."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError
from .prompting.constants import DEFAULT_DOCUMENT_KIND, DOCUMENT_KINDS

CONFIG_FILENAME = ".echodocs.yml"

SELECTION_FULL = "full"
SELECTION_CURATED = "curated"
SELECTION_MODES = (SELECTION_FULL, SELECTION_CURATED)


@dataclass
class LLMConfig:
    """Inference API settings."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    request_timeout: Optional[float] = None
    max_retries: Optional[int] = None


@dataclass
class GitHubConfig:
    """Source-hosting API settings."""

    api_url: Optional[str] = None
    request_timeout: Optional[float] = None
    user_agent: Optional[str] = None


@dataclass
class PipelineConfig:
    """Defaults for synthesis runs; each value may be overridden per request."""

    document_kind: Optional[str] = None
    selection_mode: Optional[str] = None
    max_tokens_per_chunk: Optional[int] = None
    max_file_size_bytes: Optional[int] = None
    max_publish_retries: Optional[int] = None
    overall_timeout: Optional[float] = None
    fetch_concurrency: Optional[int] = None
    summary_concurrency: Optional[int] = None
    binary_threshold: Optional[float] = None
    encoding: Optional[str] = None
    exclude_paths: List[str] = field(default_factory=list)


@dataclass
class EchoDocsConfig:
    """Represents the settings defined in .echodocs.yml."""

    root: Path
    llm: LLMConfig = field(default_factory=LLMConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    store_path: Optional[Path] = None


@dataclass(frozen=True)
class SynthesisOptions:
    """Knobs for a single ``synthesize`` invocation."""

    max_tokens_per_chunk: int = 3000
    max_file_size_bytes: int = 120_000
    selection_mode: str = SELECTION_CURATED
    max_publish_retries: int = 3
    overall_timeout: float = 600.0
    document_kind: str = DEFAULT_DOCUMENT_KIND
    commit_message: Optional[str] = None
    fetch_concurrency: int = 8
    summary_concurrency: int = 4
    binary_threshold: float = 0.01
    include_failed_chunks: bool = False
    summary_max_tokens: int = 400
    assembly_max_tokens: int = 3800
    summary_temperature: float = 0.1
    assembly_temperature: float = 0.3
    encoding: str = "cl100k_base"
    exclude_paths: Sequence[str] = ()

    def __post_init__(self) -> None:
        if self.max_tokens_per_chunk <= 0:
            raise ConfigError("max_tokens_per_chunk must be positive")
        if self.max_file_size_bytes <= 0:
            raise ConfigError("max_file_size_bytes must be positive")
        if self.selection_mode not in SELECTION_MODES:
            raise ConfigError(
                f"selection_mode must be one of {', '.join(SELECTION_MODES)}; got {self.selection_mode!r}"
            )
        if self.max_publish_retries < 1:
            raise ConfigError("max_publish_retries must be at least 1")
        if self.overall_timeout <= 0:
            raise ConfigError("overall_timeout must be positive")
        if self.document_kind not in DOCUMENT_KINDS:
            raise ConfigError(
                f"Unknown document kind {self.document_kind!r}; expected one of {', '.join(DOCUMENT_KINDS)}"
            )
        if self.fetch_concurrency < 1 or self.summary_concurrency < 1:
            raise ConfigError("concurrency limits must be at least 1")
        if not 0 <= self.binary_threshold <= 1:
            raise ConfigError("binary_threshold must be between 0 and 1")

    @classmethod
    def from_config(cls, config: EchoDocsConfig | None, **overrides: Any) -> "SynthesisOptions":
        """Merge config defaults with explicit overrides (``None`` overrides are ignored)."""
        values: Dict[str, Any] = {}
        if config is not None:
            pipeline = config.pipeline
            candidates = {
                "document_kind": pipeline.document_kind,
                "selection_mode": pipeline.selection_mode,
                "max_tokens_per_chunk": pipeline.max_tokens_per_chunk,
                "max_file_size_bytes": pipeline.max_file_size_bytes,
                "max_publish_retries": pipeline.max_publish_retries,
                "overall_timeout": pipeline.overall_timeout,
                "fetch_concurrency": pipeline.fetch_concurrency,
                "summary_concurrency": pipeline.summary_concurrency,
                "binary_threshold": pipeline.binary_threshold,
                "encoding": pipeline.encoding,
            }
            values.update({key: value for key, value in candidates.items() if value is not None})
            if pipeline.exclude_paths:
                values["exclude_paths"] = tuple(pipeline.exclude_paths)
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "SynthesisOptions":
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})


def load_config(config_path: Path | None = None) -> EchoDocsConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(config_path or Path.cwd())
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    llm_data = _as_dict(data.get("llm"))
    llm = LLMConfig(
        model=_as_str(llm_data.get("model")) or _first_env_value(("ECHODOCS_LLM_MODEL", "OPENAI_MODEL")),
        base_url=_as_str(llm_data.get("base_url"))
        or _first_env_value(("ECHODOCS_LLM_BASE_URL", "OPENAI_BASE_URL")),
        request_timeout=_as_float(llm_data.get("request_timeout")),
        max_retries=_as_int(llm_data.get("max_retries")),
    )

    github_data = _as_dict(data.get("github"))
    github = GitHubConfig(
        api_url=_as_str(github_data.get("api_url")) or _first_env_value(("ECHODOCS_GITHUB_API_URL",)),
        request_timeout=_as_float(github_data.get("request_timeout")),
        user_agent=_as_str(github_data.get("user_agent")),
    )

    pipeline_data = _as_dict(data.get("pipeline"))
    pipeline = PipelineConfig(
        document_kind=_as_str(pipeline_data.get("document_kind")),
        selection_mode=_as_str(pipeline_data.get("selection_mode")),
        max_tokens_per_chunk=_as_int(pipeline_data.get("max_tokens_per_chunk")),
        max_file_size_bytes=_as_int(pipeline_data.get("max_file_size_bytes")),
        max_publish_retries=_as_int(pipeline_data.get("max_publish_retries")),
        overall_timeout=_as_float(pipeline_data.get("overall_timeout")),
        fetch_concurrency=_as_int(pipeline_data.get("fetch_concurrency")),
        summary_concurrency=_as_int(pipeline_data.get("summary_concurrency")),
        binary_threshold=_as_float(pipeline_data.get("binary_threshold")),
        encoding=_as_str(pipeline_data.get("encoding")),
        exclude_paths=_as_str_list(pipeline_data.get("exclude_paths")),
    )
    if pipeline.selection_mode and pipeline.selection_mode not in SELECTION_MODES:
        raise ConfigError(f"pipeline.selection_mode must be one of {', '.join(SELECTION_MODES)}")
    if pipeline.document_kind and pipeline.document_kind not in DOCUMENT_KINDS:
        raise ConfigError(f"pipeline.document_kind must be one of {', '.join(DOCUMENT_KINDS)}")

    store_value = _as_str(_as_dict(data.get("store")).get("path"))
    store_path = (root / store_value) if store_value else None

    return EchoDocsConfig(root=root, llm=llm, github=github, pipeline=pipeline, store_path=store_path)


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _first_env_value(keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


def _as_dict(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "EchoDocsConfig",
    "GitHubConfig",
    "LLMConfig",
    "PipelineConfig",
    "SELECTION_CURATED",
    "SELECTION_FULL",
    "SELECTION_MODES",
    "SynthesisOptions",
    "load_config",
]
