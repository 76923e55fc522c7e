"""Path-level inclusion/exclusion policy applied to the repository tree."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterable, List, Sequence

from .config import SELECTION_CURATED, SELECTION_FULL, SELECTION_MODES
from .logging import get_logger
from .models import TreeEntry

_EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
        "env",
        "node_modules",
        "bower_components",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".tox",
        ".idea",
        ".vscode",
        ".next",
        ".nuxt",
        ".gradle",
        "dist",
        "build",
        "out",
        "coverage",
        "htmlcov",
        "vendor",
        "target",
    }
)

_EXCLUDED_FILES = frozenset(
    {
        ".DS_Store",
        "Thumbs.db",
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "poetry.lock",
        "Pipfile.lock",
        "uv.lock",
        "pdm.lock",
        "Cargo.lock",
        "composer.lock",
        "Gemfile.lock",
        "go.sum",
        "mix.lock",
        "pubspec.lock",
        "packages.lock.json",
    }
)

_EXCLUDED_SUFFIXES = frozenset(
    {
        # lock and log artefacts
        ".lock", ".log", ".bak", ".tmp", ".swp",
        # images
        ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".bmp", ".tiff", ".psd",
        # audio/video
        ".mp3", ".mp4", ".wav", ".ogg", ".avi", ".mov", ".mkv", ".webm", ".flac",
        # documents
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        # archives
        ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".rar", ".7z", ".jar", ".war",
        # fonts
        ".eot", ".ttf", ".otf", ".woff", ".woff2",
        # compiled and binary
        ".exe", ".dll", ".so", ".dylib", ".a", ".o", ".obj", ".class", ".pyc", ".pyo",
        ".wasm", ".bin", ".dat", ".db", ".sqlite", ".sqlite3", ".pkl", ".npy", ".npz",
        # minified bundles and source maps
        ".map",
    }
)

_CURATED_SUFFIXES = frozenset(
    {
        ".md", ".markdown", ".txt", ".rst", ".adoc", ".asciidoc", ".tex", ".rtf", ".html",
        ".ini", ".toml", ".yaml", ".yml", ".conf", ".cfg", ".config", ".env", ".properties",
        ".json", ".xml", ".sql", ".graphql", ".proto", ".feature",
        ".sh", ".bash", ".ps1", ".bat",
        ".py", ".js", ".mjs", ".cjs", ".ts", ".jsx", ".tsx", ".vue", ".svelte", ".astro",
        ".java", ".kt", ".kts", ".scala", ".cs", ".go", ".rb", ".php", ".swift", ".rs",
        ".c", ".cc", ".cpp", ".h", ".hh", ".hpp", ".m", ".mm", ".r", ".jl", ".lua", ".dart",
        ".ex", ".exs", ".erl", ".hs", ".clj", ".css", ".scss", ".sass", ".less",
    }
)

# Kept in curated mode regardless of extension.
_HIGH_SIGNAL_NAMES = frozenset(
    {
        "readme",
        "license",
        "licence",
        "copying",
        "contributing",
        "changelog",
        "changes",
        "history",
        "code_of_conduct",
        "security",
        "authors",
        "notice",
        "makefile",
        "dockerfile",
        "procfile",
        "justfile",
    }
)


@dataclass
class IgnoreRule:
    """A gitignore-style pattern supplied through configuration."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str) -> bool:
        if not self.pattern:
            return False
        parts = rel_path.split("/")

        if self.anchored or self.has_slash:
            if self.directory_only:
                return rel_path.startswith(f"{self.pattern}/") or any(
                    fnmatchcase("/".join(parts[:depth]), self.pattern) for depth in range(1, len(parts))
                )
            return fnmatchcase(rel_path, self.pattern) or rel_path.startswith(f"{self.pattern}/")

        # An unanchored pattern matches any path segment; a directory-only one
        # never matches the final (file) segment.
        candidates = parts[:-1] if self.directory_only else parts
        return any(fnmatchcase(part, self.pattern) for part in candidates)


def build_ignore_rule(pattern: str) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern or pattern.startswith("#"):
        return None

    negate = pattern.startswith("!")
    if negate:
        pattern = pattern[1:]

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern.rstrip("/")

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern.lstrip("/")

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _suffix(name: str) -> str:
    if "." not in name.lstrip("."):
        return ""
    return "." + name.rsplit(".", 1)[-1].lower()


def _stem(name: str) -> str:
    lowered = name.lower()
    if lowered.startswith("."):
        return lowered
    return lowered.split(".", 1)[0]


class FileSelector:
    """Pure filter choosing which tree entries are worth summarising."""

    def __init__(
        self,
        *,
        max_file_size_bytes: int,
        mode: str = SELECTION_CURATED,
        exclude_paths: Sequence[str] = (),
        extra_suffixes: Iterable[str] = (),
    ) -> None:
        if mode not in SELECTION_MODES:
            raise ValueError(f"Unknown selection mode: {mode}")
        self.max_file_size_bytes = max_file_size_bytes
        self.mode = mode
        self._rules = [rule for rule in (build_ignore_rule(p) for p in exclude_paths) if rule]
        self._curated_suffixes = _CURATED_SUFFIXES | {s.lower() for s in extra_suffixes}
        self.logger = get_logger("selection")

    def select(self, entries: Sequence[TreeEntry]) -> List[TreeEntry]:
        chosen = [entry for entry in entries if self.accepts(entry)]
        self.logger.info(
            "Selected %d of %d tree entries (%s mode)", len(chosen), len(entries), self.mode
        )
        return chosen

    def accepts(self, entry: TreeEntry) -> bool:
        if not entry.is_file:
            return False
        if self._is_denied(entry.path):
            return False
        if entry.size > self.max_file_size_bytes:
            self.logger.debug(
                "Skipping %s: %d bytes exceeds %d", entry.path, entry.size, self.max_file_size_bytes
            )
            return False
        if self.mode == SELECTION_FULL:
            return True
        return self._is_curated(entry.path)

    def _is_denied(self, path: str) -> bool:
        parts = path.split("/")
        if any(part in _EXCLUDED_DIRS for part in parts[:-1]):
            return True
        name = parts[-1]
        if name in _EXCLUDED_FILES:
            return True
        lowered = name.lower()
        if _suffix(lowered) in _EXCLUDED_SUFFIXES or lowered.endswith((".min.js", ".min.css")):
            return True
        if (lowered == ".env" or lowered.startswith(".env.")) and not lowered.endswith(
            (".example", ".sample", ".template")
        ):
            return True

        ignored = False
        for rule in self._rules:
            if rule.matches(path):
                ignored = not rule.negate
        return ignored

    def _is_curated(self, path: str) -> bool:
        name = _basename(path)
        if _stem(name) in _HIGH_SIGNAL_NAMES:
            return True
        return _suffix(name) in self._curated_suffixes


__all__ = ["FileSelector", "IgnoreRule", "build_ignore_rule"]
