from __future__ import annotations

import pytest

from tests.game.pvp_store_fixtures import FakePvpStore, install_fake_pvp_store


@pytest.fixture
def pvp_store(monkeypatch: pytest.MonkeyPatch) -> FakePvpStore:
    store = install_fake_pvp_store(monkeypatch)
    store.add_user(101, display_name="Ada", email="ada@example.com")
    store.add_user(202, display_name="Linus", email="linus@example.com")
    store.add_user(303, display_name="Grace", email=None)
    return store
