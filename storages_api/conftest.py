"""Shared test fixtures for the storages package."""

import os
from pathlib import Path
import random
from typing import Callable

import pytest
from faker import Faker

from storages_api.service.filesystem_service import FilesystemService
from storages_api.stages.driver import LocalDriver
from storages_api.storage.factories import IndexedFileFactory
from storages_api.storage.manager import IndexStore


@pytest.fixture(scope="session", autouse=True)
def setup_factory_seed():
    """Configure factory_boy/Faker to use a deterministic seed for reproducibility.

    The seed can be set via FACTORY_SEED environment variable, or will be
    randomly generated. The seed is printed to stdout for reproducibility.
    """
    seed = os.environ.get("FACTORY_SEED")
    if seed:
        seed = int(seed)
    else:
        seed = random.randint(0, 2**32 - 1)

    print(f"\n{'=' * 70}")
    print(f"Factory seed: {seed}")
    print(f"To reproduce this test run, set: FACTORY_SEED={seed}")
    print(f"{'=' * 70}\n")

    Faker.seed(seed)
    random.seed(seed)

    return seed


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_files() -> Callable[[Path, dict[str, str]], None]:
    """Write ``{relative path: content}`` under a root; a trailing / makes a dir."""

    def _make(root: Path, files: dict[str, str]) -> None:
        for rel_path, content in files.items():
            target = root / rel_path
            if rel_path.endswith("/"):
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)

    return _make


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "ssd"
    root.mkdir()
    return root


@pytest.fixture
def driver(storage_root: Path) -> LocalDriver:
    return LocalDriver({"ssd": str(storage_root)})


@pytest.fixture
def index_store(tmp_path: Path):
    """Create an IndexStore with a temporary database."""
    store = IndexStore(tmp_path / "index.db")
    yield store
    store.dispose()


@pytest.fixture
def index_session(index_store: IndexStore):
    """Create an index session backed by IndexStore."""
    with index_store.get_index_session() as session:
        IndexedFileFactory._meta.sqlalchemy_session = session  # type: ignore[misc]
        yield session


@pytest.fixture
def service(driver: LocalDriver, index_store: IndexStore):
    """FilesystemService over the temporary ssd storage, scheduler not started."""
    svc = FilesystemService(driver, index_store)
    yield svc
    svc.scheduler.stop()
