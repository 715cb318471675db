from datetime import datetime, timedelta

import pytest

from entry_store import EntryStore


class FakeClock:
    """Deterministic replacement for datetime.now."""

    def __init__(self, start: datetime = datetime(2026, 10, 19, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TMPO_HOME", str(tmp_path / "tmpo-home"))
    monkeypatch.setenv("TMPO_NO_UPDATE_CHECK", "1")
    monkeypatch.delenv("TMPO_DEBUG", raising=False)
    monkeypatch.delenv("TMPO_RELEASES_URL", raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def store(data_dir, clock):
    entry_store = EntryStore.open(data_dir, clock=clock)
    yield entry_store
    entry_store.close()
