"""Fixtures for the incident review tests."""

import pytest

from incident_review.config import Settings
from incident_review.store import CandidateStore
from review_stubs import StubDetailsFetcher, StubNotifier, StubRepository, make_candidate


@pytest.fixture
def store():
    return CandidateStore()


@pytest.fixture
def notifier():
    return StubNotifier()


@pytest.fixture
def repository():
    return StubRepository()


@pytest.fixture
def details_fetcher():
    return StubDetailsFetcher()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def candidate():
    return make_candidate()
