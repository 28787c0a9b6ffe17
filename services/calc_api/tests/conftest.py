import asyncio
import json
import os
import sys
import tempfile
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[3]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

os.environ.setdefault("NEOCALC_PROVIDER", "mock")
os.environ.setdefault("NEOCALC_TRACE_PATH", os.path.join(tempfile.mkdtemp(prefix="neocalc-"), "traces.jsonl"))

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from notebook import get_db, init_db
from services.calc_api.main import app
from services.calc_api.providers import ProviderError, RewriteProvider


class EchoProvider(RewriteProvider):
    """Answers every round with fixed results, echoing (or tampering with) the meta."""

    def __init__(self, results, meta_override=None, fence=False):
        self.results = results
        self.meta_override = meta_override or {}
        self.fence = fence
        self.calls = []

    async def complete(self, system, user):
        request = json.loads(user)
        self.calls.append(request)
        meta = dict(request["meta"])
        meta.update(self.meta_override)
        body = json.dumps({"meta": meta, "results": self.results})
        return f"```json\n{body}\n```" if self.fence else body


class FailingProvider(RewriteProvider):
    async def complete(self, system, user):
        raise ProviderError("HTTP 503")

    async def health(self):
        return False


@pytest.fixture
def echo_provider():
    return EchoProvider


@pytest.fixture
def failing_provider():
    return FailingProvider()


@pytest.fixture(autouse=True, scope="session")
def override_db(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("db") / "calc_api.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    yield
    app.dependency_overrides.pop(get_db, None)
    asyncio.run(engine.dispose())
