import json
import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest
import sentry_sdk
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Disable outbound Sentry calls during tests
sentry_sdk.init = lambda *args, **kwargs: None  # type: ignore[assignment]
os.environ["SENTRY_DSN"] = ""
test_data_dir = Path(tempfile.mkdtemp(prefix="happio-test-"))
os.environ["DATA_DIR"] = str(test_data_dir)
os.environ.pop("DATABASE_URL", None)
os.environ["AUTH0_BYPASS"] = "true"
os.environ["RECAPTCHA_BYPASS"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["FUNCTIONS_BASE_URL"] = "https://functions.test"

from backend.happio.contracts import CityCreate, CuisineCreate, RestaurantCreate  # noqa: E402
from backend.happio.db.core import Base  # noqa: E402
from backend.happio.functions import HumanVerifier, create_functions_client  # noqa: E402
from backend.happio.health import health_checker  # noqa: E402
from backend.happio.main import app  # noqa: E402
from backend.happio.notifications import Notifier  # noqa: E402
from backend.happio.settings import settings  # noqa: E402

DEV_USER = "local-dev-user"


class FunctionRecorder:
    """Stands in for the serverless functions host and remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.responses: dict[str, httpx.Response] = {}

    def respond(self, name: str, status_code: int = 200, body: dict | None = None) -> None:
        self.responses[name] = httpx.Response(status_code, json=body if body is not None else {})

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def payloads(self, name: str) -> list[dict]:
        return [payload for called, payload in self.calls if called == name]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.strip("/")
        self.calls.append((name, json.loads(request.content or b"{}")))
        return self.responses.get(name, httpx.Response(200, json={"success": True}))


async def _wipe_tables(db) -> None:
    async with db.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest.fixture(scope="session")
def client():
    with TestClient(app, base_url="http://api.testserver") as test_client:
        yield test_client


@pytest.fixture
def db(client):
    return app.state.db


@pytest.fixture
def run(client):
    """Run a coroutine function on the app's event loop."""

    def _run(fn, *args, **kwargs):
        if kwargs:
            return client.portal.call(lambda: fn(*args, **kwargs))
        return client.portal.call(fn, *args)

    return _run


@pytest.fixture(autouse=True)
def clean_state(client):
    settings.AUTH0_BYPASS = True
    settings.RECAPTCHA_BYPASS = True
    settings.RATE_LIMIT_ENABLED = False
    settings.SENTRY_DSN = None
    limiter = getattr(app.state, "rate_limiter", None)
    if limiter:
        limiter.reset()
    client.portal.call(_wipe_tables, app.state.db)
    app.state.reference_cache.invalidate()
    health_checker.clear_cache()
    yield


@pytest.fixture(autouse=True)
def functions(client):
    recorder = FunctionRecorder()
    fn_client = create_functions_client(transport=httpx.MockTransport(recorder))
    previous = (app.state.functions, app.state.verifier, app.state.notifier)
    app.state.functions = fn_client
    app.state.verifier = HumanVerifier(fn_client)
    app.state.notifier = Notifier(fn_client)
    yield recorder
    app.state.functions, app.state.verifier, app.state.notifier = previous
    client.portal.call(fn_client.aclose)


@pytest.fixture
def admin(run, db):
    run(db.grant_role, DEV_USER, "admin")
    return DEV_USER


@pytest.fixture
def seed(run, db):
    """Factories that write reference data straight through the store."""

    class Seed:
        def city(self, name="Amsterdam", slug="amsterdam", **fields):
            fields.setdefault("province", "Noord-Holland")
            fields.setdefault("latitude", 52.3676)
            fields.setdefault("longitude", 4.9041)
            return run(db.create_city, CityCreate(name=name, slug=slug, **fields))

        def cuisine(self, name="Italiaans", slug="italiaans", **fields):
            return run(db.create_cuisine, CuisineCreate(name=name, slug=slug, **fields))

        def restaurant(self, city, name="De Kas", slug=None, **fields):
            fields.setdefault("latitude", 52.3547)
            fields.setdefault("longitude", 4.9384)
            fields.setdefault("address", "Kamerlingh Onneslaan 3")
            payload = RestaurantCreate(
                name=name,
                slug=slug or name.lower().replace(" ", "-"),
                city_id=city["id"] if city else None,
                **fields,
            )
            return run(db.create_restaurant, payload)

    return Seed()
