# tests/conftest.py
"""Shared test fixtures.

Fixtures:
- recorder / northwind_factory: function-scoped factory whose hooks record
  every call, for tests that count builds and clones.
- shared_factory: session-scoped factory built once for the whole run,
  with `db` and `db_connection` giving each test its own clone.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator

import pytest
from hypothesis import Phase, Verbosity, settings

from protofixture import PrototypeFactory
from protofixture.testing import connection_fixture, factory_fixture, handle_fixture
from tests.fixtures.factories import NORTHWIND_HOOKS, NorthwindRecorder, make_northwind_factory

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def recorder() -> NorthwindRecorder:
    return NorthwindRecorder()


@pytest.fixture
def northwind_factory(recorder: NorthwindRecorder) -> Iterator[PrototypeFactory]:
    """Function-scoped in-memory Northwind factory, disposed after the test."""
    with make_northwind_factory(recorder=recorder) as factory:
        yield factory


shared_factory = factory_fixture(hooks=NORTHWIND_HOOKS, name="shared_factory")
db = handle_fixture("shared_factory", name="db")
db_connection = connection_fixture("shared_factory", name="db_connection")
