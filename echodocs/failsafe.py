"""Placeholder documents returned when a run cannot produce real content."""

from __future__ import annotations

from .errors import ErrorKind
from .models import RepositoryRef, SynthesizedDocument
from .prompting.constants import document_title

_GUIDANCE = {
    ErrorKind.SELECTION_EMPTY: (
        "No suitable text-based files were found in the repository to generate this document from.",
        "Make sure the branch contains readable files such as a README, source code, or other "
        "documentation, or switch the selection mode to `full`.",
    ),
    ErrorKind.ASSEMBLY_FAILED: (
        "The repository was analysed, but the final document could not be assembled.",
        "Retry the generation; if the problem persists, check the inference API quota and key.",
    ),
}


def build_placeholder_document(
    ref: RepositoryRef,
    document_kind: str,
    kind: ErrorKind,
    *,
    reason: str | None = None,
) -> SynthesizedDocument:
    """Return a clearly-marked stand-in document describing why generation stopped."""
    title = f"{document_title(document_kind)} for {ref.full_name}"
    summary, next_step = _GUIDANCE.get(
        kind,
        ("The document could not be generated.", "Retry the generation once the issue is resolved."),
    )
    lines = [f"# {title}", "", summary, "", next_step]
    if reason:
        lines.extend(["", f"_Generation note: {_format_reason(reason)}_"])
    return SynthesizedDocument(
        title=title,
        body="\n".join(lines).strip() + "\n",
        source_ref=ref,
        document_kind=document_kind,
        placeholder=True,
    )


def _format_reason(reason: str) -> str:
    cleaned = " ".join(reason.split()).rstrip(".")
    if len(cleaned) > 240:
        return cleaned[:237].rstrip() + "..."
    return cleaned + "."


__all__ = ["build_placeholder_document"]
