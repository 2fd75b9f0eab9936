"""
tests.conftest

Shared fixtures for engine tests.

Responsibilities:
- Provide explicit test settings (never read from the process environment).
- Provide fresh state containers for the common schemas.
"""

from __future__ import annotations

import pytest

from fakes import DescriptionOutput, NumberInput, ParityOutput, RecordingModel
from parsero import Settings, State


@pytest.fixture
def settings() -> Settings:
    return Settings(env="test", max_iterations=100, verbose=False)


@pytest.fixture
def parity_state() -> State[NumberInput, ParityOutput]:
    return State(input_schema=NumberInput, output_schema=ParityOutput)


@pytest.fixture
def description_state() -> State[NumberInput, DescriptionOutput]:
    return State(input_schema=NumberInput, output_schema=DescriptionOutput)


@pytest.fixture
def model() -> RecordingModel:
    return RecordingModel()


# --- Module Notes -----------------------------------------------------------
# Module-level helpers live in `tests/fakes.py`; pytest puts `tests/` on sys.path.
