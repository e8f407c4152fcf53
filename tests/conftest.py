import pytest
from fastapi.testclient import TestClient

from feasibility_app.main import app
from feasibility_app.models.schemas import FeasibilityInputs
from feasibility_app.services.feasibility_model import DEFAULT_INPUTS


@pytest.fixture
def valid_inputs() -> FeasibilityInputs:
    return FeasibilityInputs(**DEFAULT_INPUTS)


@pytest.fixture
def make_inputs():
    """Build inputs from the reference project with selected fields overridden."""
    def _make(**overrides) -> FeasibilityInputs:
        return FeasibilityInputs(**{**DEFAULT_INPUTS, **overrides})
    return _make


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
