"""Test configuration and fixtures."""
import os
import sys
import tempfile

# Add the repository root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Keep the app's startup hook off the developer database and log directory
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="liveshelf-logs-"))
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from liveshelf.core.db import Base, get_db_session  # noqa: E402
from liveshelf.core.security import create_access_token  # noqa: E402
from liveshelf.main import app  # noqa: E402
from liveshelf.models import schema  # noqa: E402, F401
from liveshelf.models.metadata import PreviewFetchStatus, PreviewResult, PreviewSite  # noqa: E402
from liveshelf.models.user import User  # noqa: E402
from liveshelf.routers.images import get_image_transport  # noqa: E402
from liveshelf.services.image_cache import MemoryImageCache, get_image_cache  # noqa: E402
from liveshelf.services.preview_fetcher import get_preview_fetcher  # noqa: E402


class FakePreviewFetcher:
    """Stands in for fetch_preview; records the URLs it was asked for."""

    def __init__(self, result: PreviewResult | None = None):
        self.result = result or PreviewResult.failed()
        self.calls: list[str] = []

    async def __call__(self, url: str) -> PreviewResult:
        self.calls.append(url)
        return self.result


@pytest.fixture
def test_db():
    """Create a test database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(test_db):
    """Create a test database session."""
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def preview_fetcher():
    """Preview fetcher returning a successful X preview for Jane."""
    return FakePreviewFetcher(
        PreviewResult(
            title="Jane (@jane)",
            description="Live now",
            image_url="https://pbs.twimg.com/card.jpg",
            site=PreviewSite.X,
            status=PreviewFetchStatus.SUCCESS,
        )
    )


@pytest.fixture
def image_cache():
    return MemoryImageCache(max_age_seconds=30 * 24 * 60 * 60)


@pytest.fixture
def image_transport():
    """Override per test by assigning ``image_transport.transport``."""

    class _Holder:
        transport = None

    return _Holder()


@pytest.fixture
def client(db_session, preview_fetcher, image_cache, image_transport):
    """Create a test client with database, fetcher and cache overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_preview_fetcher] = lambda: preview_fetcher
    app.dependency_overrides[get_image_cache] = lambda: image_cache
    app.dependency_overrides[get_image_transport] = lambda: image_transport.transport

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def user(db_session):
    """Persisted active user."""
    account = User(email="viewer@example.com", display_name="Viewer", is_active=True)
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


@pytest.fixture
def other_user(db_session):
    account = User(email="other@example.com", is_active=True)
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


@pytest.fixture
def auth_headers(user):
    """Bearer header for ``user``."""
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
