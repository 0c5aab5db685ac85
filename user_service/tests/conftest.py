import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from user_service.config import Settings
from user_service.main import create_app
from user_service.auth.jwt import TokenCodec
from user_service.auth.passwords import PasswordHasher
from user_service.auth.store import InMemoryUserStore
from user_service.auth.users import SessionManager

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"


@pytest.fixture
def settings():
    return Settings(
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
        bcrypt_rounds=4,
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
def store():
    return InMemoryUserStore()


@pytest.fixture
def codec(settings):
    return TokenCodec(settings)


@pytest.fixture
def hasher(settings):
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def manager(store, codec, hasher, settings):
    return SessionManager(store=store, codec=codec, hasher=hasher, settings=settings)


@pytest.fixture
def app(settings, store):
    return create_app(settings=settings, store=store)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="https://test", transport=transport) as ac:
        yield ac
