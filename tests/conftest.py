"""
Pytest configuration for lazystream tests.

Puts the project root on the Python path so tests can import the lazy,
numeric, collectors, models and utils modules directly.
"""

import sys
from pathlib import Path

parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from models import StreamSettings
from utils import clear_performance_metrics


@pytest.fixture
def numbers():
    return [1, 2, 3, 4, 5, 2, 3]


@pytest.fixture
def small_settings():
    """Tiny partitions so even short sources span several workers and waves"""
    return StreamSettings(max_workers=3, chunk_size=2)


@pytest.fixture
def pull_counter():
    """Infinite counting source that records how many elements were pulled"""
    class Counter:
        def __init__(self):
            self.pulled = 0

        def source(self, start=0):
            value = start
            while True:
                self.pulled += 1
                yield value
                value += 1

    return Counter()


@pytest.fixture(autouse=True)
def reset_performance_metrics():
    clear_performance_metrics()
    yield
    clear_performance_metrics()
