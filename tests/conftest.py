import numpy as np
import pytest


@pytest.fixture
def rng() -> np.random.Generator:
    # Seeded: failures of the end-to-end scenarios are reproducible.
    return np.random.default_rng(2024)
