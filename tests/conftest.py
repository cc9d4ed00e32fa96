import pytest

from club.backend import ClubBackend
from club.services.photo_storage import LocalPhotoStorage

ADMIN = "admin"


@pytest.fixture
async def backend(tmp_path):
    """A fresh backend over a file-backed SQLite database per test"""
    club = ClubBackend(
        f"sqlite+aiosqlite:///{tmp_path / 'club.db'}",
        photo_storage=LocalPhotoStorage(tmp_path / "photos"),
    )
    await club.initialize()
    yield club
    await club.close()


@pytest.fixture
async def club(backend):
    """Backend with an admin and three members at the starting rating"""
    await backend.initialize_access_control(ADMIN)
    for identity, name in (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")):
        await backend.save_profile(identity, name)
    return backend


@pytest.fixture
def create_members(backend):
    async def _create_members(ratings):
        """Import members named m0, m1, ... with the given ratings"""
        await backend.initialize_access_control(ADMIN)
        records = [
            {"identity": f"m{i}", "name": f"Member {i}", "elo_rating": rating}
            for i, rating in enumerate(ratings)
        ]
        await backend.import_members(ADMIN, records)
        return [r["identity"] for r in records]

    return _create_members
