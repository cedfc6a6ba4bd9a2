"""
Pytest configuration and fixtures for Circle Onboarding tests.
"""

import copy
import os

import pytest
from unittest.mock import MagicMock

# Set test environment before importing circle_onboarding modules
os.environ["ONBOARDING_ENV"] = "development"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""

from circle_onboarding.channels import MemoryCache, RemoteProgressRecord


class InMemoryRemote:
    """Durable channel double that remembers what was written."""

    def __init__(self):
        self.row: tuple[int, dict] | None = None
        self.writes: list[tuple[int, dict]] = []
        self.completed_payload: dict | None = None
        self.fail_reads = False
        self.fail_complete = False

    async def read(self) -> RemoteProgressRecord | None:
        if self.fail_reads:
            raise ConnectionError("durable channel unavailable")
        if self.completed_payload is not None:
            return RemoteProgressRecord(completed=True)
        if self.row is None:
            return None
        step_index, data = self.row
        return RemoteProgressRecord(step_index=step_index, data=copy.deepcopy(data))

    async def write(self, step_index: int, data: dict) -> None:
        self.writes.append((step_index, copy.deepcopy(data)))
        self.row = (step_index, copy.deepcopy(data))

    async def complete(self, payload: dict) -> None:
        if self.fail_complete:
            raise ConnectionError("durable channel unavailable")
        self.completed_payload = payload


@pytest.fixture
def remote():
    return InMemoryRemote()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    # Mock table operations
    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.insert.return_value = mock_table
    mock_table.upsert.return_value = mock_table
    mock_table.update.return_value = mock_table
    mock_table.delete.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.in_.return_value = mock_table
    mock_table.limit.return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])

    mock_client.table.return_value = mock_table

    return mock_client


@pytest.fixture
def basics_answers():
    """Answers that complete the basics step and nothing else."""
    return {"birth_year": 1990, "gender": "male", "height_feet": 5, "weight": 180}


@pytest.fixture
def commercial_answers(basics_answers):
    """A fully answered session for a commercial-gym member."""
    return {
        "name": "Jordan",
        "profile_photo_acknowledged": True,
        **basics_answers,
        "height_inches": 10,
        "primary_goal": "strength",
        "fitness_level": "intermediate",
        "training_frequency": 4,
        "sports_acknowledged": True,
        "maxes_acknowledged": True,
        "limitations_acknowledged": True,
        "gym_locations": ["commercial"],
        "gym_search_acknowledged": True,
        "workout_duration": 60,
        "workout_days": ["monday", "wednesday", "friday"],
        "personal_context_acknowledged": True,
    }


@pytest.fixture
def home_answers(commercial_answers):
    """A fully answered session for a home-gym member with free weights."""
    answers = dict(commercial_answers)
    del answers["gym_search_acknowledged"]
    answers.update({
        "gym_locations": ["home"],
        "equipment_access": ["dumbbells", "bench"],
        "weights_acknowledged": True,
    })
    return answers
