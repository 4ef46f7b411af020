"""Test configuration and shared fixtures."""

import pytest

from fakes import RecordingStore, ScriptedDecomposer, ScriptedGenerator


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def decomposer() -> ScriptedDecomposer:
    return ScriptedDecomposer()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()
