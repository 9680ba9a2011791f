import pytest

from chessteacher.profile_store import ProfileStore

from fakes import ManualScheduler, Recorder


@pytest.fixture
def store(tmp_path):
    return ProfileStore(str(tmp_path / "profiles.json"))


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def scheduler():
    return ManualScheduler()
