import pytest
from fastapi.testclient import TestClient

from api.main import app as fastapi_app, get_reference_store
from api.references import InMemoryReferenceStore

RECIPIENT = "0xAbCdEf0000000000000000000000000000000001"
COOKIE_SECRET = "test-cookie-secret-0123456789abcdef"


class FakeClock:
    """Manually advanced clock for TTL tests"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("PAYMENT_RECIPIENT_ADDRESS", RECIPIENT)
    monkeypatch.setenv("WLD_APP_ID", "app_test_123")
    monkeypatch.setenv("DEV_PORTAL_API_KEY", "api_key_test")
    monkeypatch.setenv("PAY_REF_COOKIE_SECRET", COOKIE_SECRET)
    monkeypatch.setenv("GEMINI_API_KEY", "gemini_test_key")
    for name in ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME", "R2_PUBLIC_URL", "APP_ENV"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryReferenceStore(clock=clock)


@pytest.fixture
def client(store):
    fastapi_app.dependency_overrides[get_reference_store] = lambda: store
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def r2_env(monkeypatch):
    monkeypatch.setenv("R2_ACCOUNT_ID", "acct123")
    monkeypatch.setenv("R2_ACCESS_KEY_ID", "r2_key")
    monkeypatch.setenv("R2_SECRET_ACCESS_KEY", "r2_secret")
    monkeypatch.setenv("R2_BUCKET_NAME", "travel-photos")
    monkeypatch.setenv("R2_PUBLIC_URL", "https://images.example.com")
