from __future__ import annotations

import logging

import pytest

from echodocs.chunking import TokenChunker
from echodocs.models import RepositoryRef
from tests._fixtures.fake_github import FakeGitHub
from tests._fixtures.fakes import CharTokenizer, ScriptedInference


@pytest.fixture
def ref() -> RepositoryRef:
    return RepositoryRef(owner="octo", name="demo", branch="main")


@pytest.fixture
def github() -> FakeGitHub:
    """Provide an empty in-memory repository octo/demo@main."""
    return FakeGitHub()


@pytest.fixture
def inference() -> ScriptedInference:
    return ScriptedInference()


@pytest.fixture
def chunker() -> TokenChunker:
    return TokenChunker(CharTokenizer())


@pytest.fixture(autouse=True)
def _reset_echodocs_logger():
    """Undo configure_logging so caplog keeps seeing echodocs records."""
    yield
    logger = logging.getLogger("echodocs")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
