import asyncio
import inspect
import os
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

# Settings are read at import time: point the app at an in-memory database first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.core.database import get_db, init_models
from backoffice.core.errors import TransportError
from backoffice.editor.client import MenuApiClient
from backoffice.main import app


class RecordingApi:
    """Wraps a ``MenuApiClient``: records calls, injects failures, and can
    hold a call mid-flight until the test releases it."""

    def __init__(self, inner: MenuApiClient):
        self.inner = inner
        self.calls: List[Tuple[str, tuple, dict]] = []
        self._failures: Dict[str, List[Exception]] = defaultdict(list)
        self._gates: Dict[str, asyncio.Event] = {}
        self._entered: Dict[str, asyncio.Event] = {}
        self.active: Dict[str, int] = defaultdict(int)
        self.max_active: Dict[str, int] = defaultdict(int)

    def count(self, method: str) -> int:
        return sum(1 for name, _, _ in self.calls if name == method)

    def calls_to(self, method: str) -> List[Tuple[tuple, dict]]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == method]

    def fail_next(self, method: str, exc: Optional[Exception] = None, times: int = 1) -> None:
        for _ in range(times):
            self._failures[method].append(exc or TransportError(f"{method}: connection reset"))

    def hold(self, method: str) -> None:
        self._gates[method] = asyncio.Event()
        self._entered[method] = asyncio.Event()

    async def wait_entered(self, method: str) -> None:
        await asyncio.wait_for(self._entered[method].wait(), timeout=5)

    def release(self, method: str) -> None:
        self._gates.pop(method).set()

    def __getattr__(self, name):
        target = getattr(self.inner, name)
        if not inspect.iscoroutinefunction(target):
            return target

        async def call(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            if self._failures.get(name):
                raise self._failures[name].pop(0)
            self.active[name] += 1
            self.max_active[name] = max(self.max_active[name], self.active[name])
            try:
                gate = self._gates.get(name)
                if gate is not None:
                    self._entered[name].set()
                    await gate.wait()
                return await target(*args, **kwargs)
            finally:
                self.active[name] -= 1

        return call


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def http(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def api(http) -> RecordingApi:
    return RecordingApi(MenuApiClient(http=http))


@pytest.fixture
def editor_options():
    return {"basics_delay": 0.02, "structure_delay": 0.03}
