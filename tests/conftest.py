"""Shared fixtures for dataknobs_validate tests."""

import pytest

from dataknobs_validate import ValidationEngine, set_default_engine


@pytest.fixture
def engine():
    """A fresh engine with its own registries."""
    return ValidationEngine()


@pytest.fixture
def default_engine():
    """Install a fresh default engine and reset it afterwards."""
    fresh = ValidationEngine()
    set_default_engine(fresh)
    yield fresh
    set_default_engine(None)


@pytest.fixture
def signup_constraints():
    """Constraints for a typical signup form."""
    return {
        "username": {"presence": True, "length": {"minimum": 3, "maximum": 20}},
        "email": {"presence": True, "email": True},
        "password": {"presence": True, "length": {"minimum": 8}},
        "confirm_password": {"equality": "password"},
        "age": {"numericality": {"onlyInteger": True, "greaterThanOrEqualTo": 18}},
    }
