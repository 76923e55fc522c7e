"""Document kinds understood by the synthesis pipeline."""

from __future__ import annotations

USER_MANUAL = "user_manual"
TECHNICAL_OVERVIEW = "technical_overview"
CONTRIBUTING_GUIDE = "contributing_guide"
PROJECT_STRUCTURE = "project_structure"

DOCUMENT_KINDS: tuple[str, ...] = (
    USER_MANUAL,
    TECHNICAL_OVERVIEW,
    CONTRIBUTING_GUIDE,
    PROJECT_STRUCTURE,
)

DEFAULT_DOCUMENT_KIND = USER_MANUAL

# Kinds whose assembly prompt also lists the repository layout.
TREE_LISTING_KINDS: tuple[str, ...] = (PROJECT_STRUCTURE,)
TREE_LISTING_LIMIT = 300

DOCUMENT_TITLES: dict[str, str] = {
    USER_MANUAL: "User Manual",
    TECHNICAL_OVERVIEW: "Technical Documentation",
    CONTRIBUTING_GUIDE: "Contributing Guide",
    PROJECT_STRUCTURE: "Project Structure",
}

DEFAULT_TARGET_PATHS: dict[str, str] = {
    USER_MANUAL: "USER_MANUAL.md",
    TECHNICAL_OVERVIEW: "DOCUMENTATION.md",
    CONTRIBUTING_GUIDE: "CONTRIBUTING.md",
    PROJECT_STRUCTURE: "PROJECT_STRUCTURE.md",
}


def document_title(kind: str) -> str:
    return DOCUMENT_TITLES.get(kind, kind.replace("_", " ").title())


def default_target_path(kind: str) -> str:
    return DEFAULT_TARGET_PATHS.get(kind, f"{kind.upper()}.md")


__all__ = [
    "CONTRIBUTING_GUIDE",
    "DEFAULT_DOCUMENT_KIND",
    "DEFAULT_TARGET_PATHS",
    "DOCUMENT_KINDS",
    "DOCUMENT_TITLES",
    "PROJECT_STRUCTURE",
    "TECHNICAL_OVERVIEW",
    "TREE_LISTING_KINDS",
    "TREE_LISTING_LIMIT",
    "USER_MANUAL",
    "default_target_path",
    "document_title",
]
