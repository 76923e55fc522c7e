"""Tests for the chunk summarisation (map) step."""

from __future__ import annotations

import random
import time

import pytest

from echodocs.concurrency import Deadline
from echodocs.errors import PipelineTimeout
from echodocs.llm.runner import LLMRunner
from echodocs.models import TokenChunk
from echodocs.prompting.constants import USER_MANUAL
from echodocs.summarizer import ChunkSummarizer
from tests._fixtures.fakes import ScriptedInference, timeout_error


def _chunks(path: str, count: int) -> list[TokenChunk]:
    return [
        TokenChunk(path=path, chunk_index=index, total_chunks=count, token_slice=(index,), text=f"{path}#{index}")
        for index in range(count)
    ]


def test_failed_chunk_is_flagged_without_aborting(ref) -> None:
    inference = ScriptedInference(
        chunk_failure=lambda request: timeout_error() if "(chunk 3/5)" in request.prompt else None
    )
    summarizer = ChunkSummarizer(inference.runner())

    summaries = summarizer.summarize(ref, _chunks("src/app.py", 5), document_kind=USER_MANUAL)

    assert len(summaries) == 5
    flagged = [summary for summary in summaries if summary.is_error]
    assert [summary.chunk_index for summary in flagged] == [2]
    assert flagged[0].text.startswith("Error extracting information from chunk 3/5 of src/app.py")
    assert summaries[0].text == "Summary of src/app.py (chunk 1/5)"


def test_summaries_are_ordered_by_path_then_index(ref) -> None:
    delays = random.Random(7)

    def jitter(request):
        time.sleep(delays.random() / 200)
        return None

    inference = ScriptedInference(chunk_failure=jitter)
    chunks = _chunks("z.md", 3) + _chunks("a.md", 2) + _chunks("m/x.py", 2)
    random.Random(3).shuffle(chunks)

    summaries = ChunkSummarizer(inference.runner(), max_workers=4).summarize(
        ref, chunks, document_kind=USER_MANUAL
    )

    assert [summary.sort_key for summary in summaries] == [
        ("a.md", 0),
        ("a.md", 1),
        ("m/x.py", 0),
        ("m/x.py", 1),
        ("z.md", 0),
        ("z.md", 1),
        ("z.md", 2),
    ]


def test_empty_response_counts_as_error(ref) -> None:
    summarizer = ChunkSummarizer(LLMRunner("m", api_key="k", runner=lambda request: "   "))

    summaries = summarizer.summarize(ref, _chunks("a.md", 1), document_kind=USER_MANUAL)

    assert summaries[0].is_error


def test_summary_requests_use_configured_budget(ref) -> None:
    inference = ScriptedInference()
    summarizer = ChunkSummarizer(inference.runner(), max_tokens=123, temperature=0.05)

    summarizer.summarize(ref, _chunks("a.md", 2), document_kind=USER_MANUAL)

    assert {request.max_tokens for request in inference.requests} == {123}
    assert {request.temperature for request in inference.requests} == {0.05}


def test_exhausted_deadline_raises_timeout(ref) -> None:
    inference = ScriptedInference()
    deadline = Deadline(5.0)
    deadline.cancel()

    with pytest.raises(PipelineTimeout):
        ChunkSummarizer(inference.runner()).summarize(
            ref, _chunks("a.md", 2), document_kind=USER_MANUAL, deadline=deadline
        )
    assert inference.requests == []
