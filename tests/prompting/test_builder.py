"""Tests for the prompt builder."""

from __future__ import annotations

from pathlib import Path

from echodocs.models import ChunkSummary, RepositoryRef, TokenChunk, TreeEntry
from echodocs.prompting.builder import PromptBuilder, format_tree_listing
from echodocs.prompting.constants import PROJECT_STRUCTURE, USER_MANUAL, default_target_path

REF = RepositoryRef(owner="octo", name="demo", branch="main")


def _chunk(text: str = "print('hi')\n", *, index: int = 1, total: int = 3) -> TokenChunk:
    return TokenChunk(path="src/app.py", chunk_index=index, total_chunks=total, token_slice=(1, 2), text=text)


def test_chunk_request_labels_file_and_chunk_position() -> None:
    request = PromptBuilder().build_chunk_request(
        REF, _chunk(), document_kind=USER_MANUAL, max_tokens=400, temperature=0.1
    )

    assert request.system is not None
    assert "octo/demo" in request.system
    assert "chunk 2/3" in request.system
    assert request.prompt.startswith("File: src/app.py (chunk 2/3)")
    assert "```\nprint('hi')\n\n```" in request.prompt
    assert request.max_tokens == 400
    assert request.temperature == 0.1
    assert request.metadata == {"path": "src/app.py", "chunk_index": 1}


def test_chunk_request_fence_outgrows_backticks_in_content() -> None:
    text = "Example:\n```bash\nmake\n```\n"
    request = PromptBuilder().build_chunk_request(
        REF, _chunk(text), document_kind=USER_MANUAL, max_tokens=None, temperature=None
    )

    assert "````\n" + text in request.prompt


def test_assembly_request_orders_blocks_and_lists_unavailable_chunks() -> None:
    summaries = [
        ChunkSummary(path="README.md", chunk_index=0, total_chunks=1, text="Intro"),
        ChunkSummary(path="src/app.py", chunk_index=0, total_chunks=2, text="Error", is_error=True),
        ChunkSummary(path="src/app.py", chunk_index=1, total_chunks=2, text="Routes"),
    ]

    request = PromptBuilder().build_assembly_request(
        REF, summaries, document_kind=USER_MANUAL, max_tokens=3800, temperature=0.3
    )

    prompt = request.prompt
    assert "Extracted information:" in prompt
    assert prompt.index("Source: README.md (chunk 1/1)") < prompt.index("Source: src/app.py (chunk 2/2)")
    assert "Source: src/app.py (chunk 1/2)" not in prompt
    assert "must not be described:\n- src/app.py (chunk 1/2)" in prompt
    assert request.metadata == {"summaries": 2, "unavailable": 1, "tree_entries": 0}
    assert "Repository layout" not in prompt


def test_assembly_request_can_include_failed_chunks() -> None:
    summaries = [ChunkSummary(path="a.py", chunk_index=0, total_chunks=1, text="boom", is_error=True)]

    request = PromptBuilder().build_assembly_request(
        REF, summaries, document_kind=USER_MANUAL, max_tokens=None, temperature=None, include_failed=True
    )

    assert "[summary unavailable] boom" in request.prompt
    assert request.metadata["unavailable"] == 0


def test_custom_templates_override_bundled_ones(tmp_path: Path) -> None:
    (tmp_path / "chunk").mkdir()
    (tmp_path / "chunk" / "project_structure.j2").write_text(
        "Custom layout prompt for {{ repository }}", encoding="utf-8"
    )

    builder = PromptBuilder(templates_dir=tmp_path)
    request = builder.build_chunk_request(
        REF, _chunk(), document_kind=PROJECT_STRUCTURE, max_tokens=None, temperature=None
    )

    assert request.system == "Custom layout prompt for octo/demo"


def test_unknown_kind_falls_back_to_default_template() -> None:
    request = PromptBuilder().build_chunk_request(
        REF, _chunk(), document_kind="release_notes", max_tokens=None, temperature=None
    )

    assert request.system is not None
    assert "Release Notes" in request.system
    assert default_target_path("release_notes") == "RELEASE_NOTES.md"


def test_assembly_request_lists_repository_layout() -> None:
    tree = [
        TreeEntry(path="docs", kind=TreeEntry.DIRECTORY, content_id="d1"),
        TreeEntry(path="docs/guide.md", kind=TreeEntry.FILE, content_id="f1", size=10),
        TreeEntry(path="assets/logo.png", kind=TreeEntry.FILE, content_id="f2", size=4000),
    ]
    summaries = [ChunkSummary(path="docs/guide.md", chunk_index=0, total_chunks=1, text="Guide")]

    request = PromptBuilder().build_assembly_request(
        REF, summaries, document_kind=PROJECT_STRUCTURE, max_tokens=None, temperature=None, tree=tree
    )

    prompt = request.prompt
    assert "Repository layout (D = directory, F = file):\nD docs\nF docs/guide.md\nF assets/logo.png\n" in prompt
    assert prompt.index("Repository layout") < prompt.index("Extracted information:")
    assert request.metadata["tree_entries"] == 3
    assert "layout listing" in request.system


def test_tree_listing_is_capped() -> None:
    tree = [TreeEntry(path=f"src/m{index}.py", kind=TreeEntry.FILE, content_id=str(index)) for index in range(305)]

    lines = format_tree_listing(tree)

    assert len(lines) == 301
    assert lines[0] == "F src/m0.py"
    assert lines[299] == "F src/m299.py"
    assert lines[-1] == "... 5 more entries not listed"
