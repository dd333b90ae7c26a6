import sys
from pathlib import Path

import matplotlib
import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_sessionstart(session):  # noqa: D401
    matplotlib.use("Agg")


@pytest.fixture
def rng():
    return np.random.default_rng(20240601)
