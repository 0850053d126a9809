import pytest

from tests.factories import InMemoryJobStore


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()
