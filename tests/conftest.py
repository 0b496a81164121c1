"""Shared fixtures: in-memory collaborators for the sync engine."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from permasync.core.config import EngineConfig
from permasync.client.state import LocalMetadataStore
from permasync.client.sync.conflict import ConflictResolver
from permasync.client.sync.cost import CostEstimator
from permasync.client.sync.types import DriveMapping
from tests.fakes import DRIVE_ID, ROOT_ID, FakeCredits, FakeLedger, ManualRunner


@pytest.fixture
def sync_folder(tmp_path: Path) -> Path:
    """Empty local sync folder."""
    folder = tmp_path / "Drive"
    folder.mkdir()
    return folder


@pytest.fixture
def mapping(sync_folder: Path) -> DriveMapping:
    """Public drive mapped to the sync folder."""
    return DriveMapping(
        drive_id=DRIVE_ID,
        root_folder_id=ROOT_ID,
        name="Documents",
        folder_path=str(sync_folder),
    )


@pytest.fixture
def store(mapping: DriveMapping) -> Generator[LocalMetadataStore, None, None]:
    """In-memory metadata store holding the mapping."""
    db = LocalMetadataStore(":memory:")
    db.add_mapping(mapping)
    yield db
    db.close()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def credits() -> FakeCredits:
    return FakeCredits()


@pytest.fixture
def runner() -> ManualRunner:
    return ManualRunner()


@pytest.fixture
def config() -> EngineConfig:
    """Engine configuration without grace periods."""
    return EngineConfig(completion_grace=0.0, retry_initial_backoff=0.0, upload_max_retries=0)


@pytest.fixture
def estimator(ledger: FakeLedger, credits: FakeCredits) -> CostEstimator:
    return CostEstimator(ledger, credits)


@pytest.fixture
def resolver() -> ConflictResolver:
    return ConflictResolver(machine_name="testbox")
