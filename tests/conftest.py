import sys
from pathlib import Path

import pytest

# Ensure `restaurant_catalog` is importable when running pytest from the repository root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import FakeGateway, FakeStore  # noqa: E402
from restaurant_catalog.core.rate_limit import IngestionLimiters  # noqa: E402


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def no_wait_limiters():
    return IngestionLimiters.from_delays(0, 0, page_delay=0)
