"""Pytest configuration and shared fixtures"""

import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test storage directory to avoid polluting user data
os.environ["CTXWIN_DATA_DIR"] = tempfile.mkdtemp()


@pytest.fixture(autouse=True)
def clean_storage():
    """Clean storage before each test"""
    from ctxwin.storage.storage import Storage

    # Use a fresh temp dir for each test
    Storage.BASE_DIR = Path(tempfile.mkdtemp())
    yield


@pytest.fixture
def estimator():
    """One token per character, so costs are easy to reason about"""
    from ctxwin.session.tokens import TokenEstimator

    return TokenEstimator(counter=len)


@pytest.fixture
def make_history():
    """User messages costing exactly 50 tokens each under the char estimator"""
    from ctxwin.session.message import UserMessage

    def _make(count: int) -> list:
        # 4 overhead + 4 for "user" + 42 chars of content
        return [UserMessage(content=f"{i:03d}" + "x" * 39) for i in range(count)]

    return _make


@pytest.fixture
def summarizer():
    fake = MagicMock()
    fake.summarize = AsyncMock(return_value="condensed")
    return fake
