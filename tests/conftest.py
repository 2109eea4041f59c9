"""Shared test fixtures."""

import asyncio
import os
import tempfile
from pathlib import Path

# Point storage and the database at a scratch directory before the app is imported
_TMP_DIR = Path(tempfile.mkdtemp(prefix="vahan-tests-"))
os.environ["VAHAN_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'vahan-test.db'}"
os.environ["VAHAN_STORAGE__DATA_DIR"] = str(_TMP_DIR)
os.environ["VAHAN_STORAGE__UPLOAD_DIR"] = str(_TMP_DIR / "uploads")
os.environ["VAHAN_STORAGE__RESULTS_DIR"] = str(_TMP_DIR / "results")

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from vahan_extractor.core.config import AuthConfig, ExtractionConfig, StorageConfig  # noqa: E402
from vahan_extractor.database import create_engine, create_session_factory, init_db  # noqa: E402
from vahan_extractor.models.vehicle import SectionStatus, VehicleResult  # noqa: E402
from vahan_extractor.services.job_store import JobStore  # noqa: E402
from vahan_extractor.services.orchestrator import JobOrchestrator  # noqa: E402
from vahan_extractor.services.progress_hub import ProgressHub  # noqa: E402
from vahan_extractor.services.session_manager import SessionUnavailable  # noqa: E402


class FakeSession:
    """Stands in for the browser session owner."""

    def __init__(self, auth_answers=None, authenticated=True, fail_acquire=False):
        self.auth_answers = list(auth_answers or [])
        self.authenticated = authenticated
        self.fail_acquire = fail_acquire
        self.fail_warm_up = False
        self.acquire_calls = 0
        self.auth_checks = 0
        self.navigations = 0

    async def acquire(self):
        self.acquire_calls += 1
        if self.fail_acquire:
            raise SessionUnavailable("Failed to launch browser: no display")
        return "page"

    async def check_authenticated(self) -> bool:
        self.auth_checks += 1
        if self.auth_answers:
            return self.auth_answers.pop(0)
        return self.authenticated

    async def navigate_home(self) -> None:
        self.navigations += 1
        if self.fail_warm_up and self.navigations == 1:
            raise SessionUnavailable("Browser is not open")


class FakeExtractor:
    """Scripted extractor: ``failing`` keys always raise, ``flaky`` keys fail N times."""

    def __init__(self, failing=(), flaky=None, delay=0.0, on_extract=None):
        self.failing = set(failing)
        self.flaky = dict(flaky or {})
        self.delay = delay
        self.on_extract = on_extract
        self.calls: list[str] = []

    async def extract(self, page, vehicle_number, log=None) -> VehicleResult:
        self.calls.append(vehicle_number)
        if self.on_extract is not None:
            await self.on_extract(vehicle_number)
        if self.delay:
            await asyncio.sleep(self.delay)
        if vehicle_number in self.failing:
            raise RuntimeError(f"No details for {vehicle_number}")
        if self.flaky.get(vehicle_number, 0) > 0:
            self.flaky[vehicle_number] -= 1
            raise RuntimeError("Page not ready")
        return VehicleResult(
            vehicle_number=vehicle_number,
            success=True,
            maker=f"MAKER-{vehicle_number}",
            sld_status=SectionStatus.PRESENT,
        )

    def attempts(self, vehicle_number: str) -> int:
        return self.calls.count(vehicle_number)


def write_input(path: Path, numbers) -> Path:
    """Write a csv input file with a vehicle_number column."""
    lines = ["vehicle_number"] + list(numbers)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
async def db_engine():
    """In-memory SQLite database with all tables created."""
    engine = create_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine) -> JobStore:
    return JobStore(create_session_factory(db_engine))


@pytest.fixture
def hub(store) -> ProgressHub:
    return ProgressHub(store.get_job)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def extraction_config() -> ExtractionConfig:
    return ExtractionConfig(
        max_retries=2,
        retry_delay=0,
        retry_jitter=0,
        item_timeout=5,
        item_delay=0,
    )


@pytest.fixture
def make_orchestrator(store, hub, fake_session, fake_extractor, extraction_config, tmp_path):
    """Build an orchestrator over the fakes; keyword overrides replace any part."""

    def factory(**overrides) -> JobOrchestrator:
        options = dict(
            store=store,
            hub=hub,
            sessions=fake_session,
            extractor=fake_extractor,
            auth_config=AuthConfig(poll_interval=0.01, max_wait=5),
            extraction_config=extraction_config,
            storage_config=StorageConfig(
                data_dir=str(tmp_path),
                upload_dir=str(tmp_path / "uploads"),
                results_dir=str(tmp_path / "results"),
            ),
        )
        options.update(overrides)
        return JobOrchestrator(**options)

    return factory


@pytest.fixture
def create_job(store, tmp_path):
    """Create a pending job over a csv file listing the given vehicle numbers."""
    counter = {"n": 0}

    async def factory(numbers):
        counter["n"] += 1
        path = write_input(tmp_path / f"input_{counter['n']}.csv", numbers)
        total = len([n for n in numbers if n.strip()])
        return await store.create_job(str(path), path.name, total)

    return factory
