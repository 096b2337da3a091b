"""Fixtures over the in-memory fakes in fakes.py."""

from __future__ import annotations

import pytest

from fakes import FakeClock, FakeRecordStore, RecordingPresenter


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()
