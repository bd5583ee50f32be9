from pathlib import Path
import sys

import pytest

# Ensure project root is on sys.path before tests import modules
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from authkit.authservice.config import AuthSettings  # noqa: E402


class FakeClock:
    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def now_utc_ts(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    # low work factor keeps the suite fast
    return AuthSettings(secret="test-secret", hash_iterations=1_000, _env_file=None)
