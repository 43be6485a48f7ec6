import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from src.config import RateLimitClass, Settings
from src.main import create_app
from src.shared.infrastructure.database.session import DatabaseSessionFactory
from tests.fakes import build_world


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        DB_AUTO_CREATE=True,
        REDIS_URL=None,
        ENCRYPTION_KEY=Fernet.generate_key().decode(),
        ENABLE_WORKERS=False,
        JSON_LOGS=False,
        WHATSAPP_GATEWAY_URL="http://gateway.test",
        META_APP_SECRET="meta-app-secret",
        META_WEBHOOK_VERIFY_TOKEN="verify-me",
        RATE_LIMIT_CLASSES={"standard": RateLimitClass(capacity=1000, refill_per_second=1000.0)},
        RATE_LIMIT_ACQUIRE_TIMEOUT_SECONDS=1.0,
        SEND_MAX_ATTEMPTS=3,
        SEND_BACKOFF_BASE_MS=1,
        SEND_BACKOFF_MAX_MS=5,
        SEND_BACKOFF_JITTER_MS=0,
        PROGRESS_EVERY=2,
        CAMPAIGN_CANCEL_POLL_SECONDS=0.01,
        SHUTDOWN_GRACE_SECONDS=1.0,
    )


@pytest.fixture
def world(settings):
    return build_world(settings)


@pytest.fixture
async def database(settings):
    db = DatabaseSessionFactory(settings.DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c
