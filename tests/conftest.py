"""Shared pytest fixtures."""

import pytest

from cascadex import Runtime, Scope


@pytest.fixture
def runtime():
    """A fresh runtime per test; nothing is shared between tests."""
    return Runtime(name="test")


@pytest.fixture
def scope(runtime):
    return Scope(runtime, name="test-scope")
