"""
Shared test helpers
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from basic_bank.config import BankConfig
from basic_bank.storage import InMemoryStorage


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FailingStorage(InMemoryStorage):
    """Storage whose writes can be switched off"""

    def __init__(self):
        super().__init__()
        self.fail = False

    def set(self, key, value):
        if self.fail:
            raise OSError("disk full")
        super().set(key, value)


def make_config(**overrides) -> BankConfig:
    settings = {"storage_backend": "memory", "log_level": "WARNING"}
    settings.update(overrides)
    return BankConfig(**settings)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture(autouse=True)
def reset_bank_logger():
    """Drop handlers the CLI installs so later tests don't write to closed streams"""
    yield
    logger = logging.getLogger("basic_bank")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
