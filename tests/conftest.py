from __future__ import annotations

import pytest

from fakes import Store, build_fake_ledger, seed_profiles


@pytest.fixture
def store() -> Store:
    return Store()


@pytest.fixture
def ids(store: Store) -> dict[str, int]:
    return seed_profiles(store)


@pytest.fixture
def ledger(store: Store, ids):
    return build_fake_ledger(store)
