"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

# --- Default env before the app is imported
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./stocksync_test.db")
os.environ.setdefault("SHOPIFY_WEBHOOK_SECRET", "test-shopify-secret")
os.environ.setdefault("WEBHOOK_PROCESSOR_SECRET", "test-cron-secret")

from stocksync.config import Settings, get_settings  # noqa: E402
from stocksync.db import build_engine, build_sessionmaker, get_db, get_session_factory  # noqa: E402
from stocksync.main import app  # noqa: E402
from stocksync.models import (  # noqa: E402
    Base,
    InventoryLevel,
    Product,
    ShopifyVariantMap,
)

from shopify_helpers import CRON_SECRET, SHOPIFY_SECRET  # noqa: E402


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    test_engine = build_engine(f"sqlite:///{tmp_path / 'stocksync_test.db'}")

    @event.listens_for(test_engine, "connect")
    def _wal(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_sessionmaker(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite://",
        shopify_webhook_secret=SHOPIFY_SECRET,
        webhook_processor_secret=CRON_SECRET,
        WORKER_ENABLED=False,
        JOB_MAX_ATTEMPTS=8,
        JOB_LEASE_TTL_SECONDS=900,
    )


@pytest.fixture(autouse=True)
def override_dependencies(
    db_session: Session, session_factory: sessionmaker[Session], settings: Settings
) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: settings
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"X-Cron-Secret": CRON_SECRET}


@pytest.fixture
def make_product(db_session: Session) -> Callable[..., Product]:
    """Factory creating a product with an inventory level and optional variant mapping."""

    def _factory(
        *,
        quantity: int = 10,
        primary_sku: str | None = None,
        supplier_sku: str | None = None,
        barcodes: list[str] | None = None,
        variant_id: int | None = None,
        product_id: str | None = None,
    ) -> Product:
        product = Product(
            id=product_id or str(uuid4()),
            name=f"product-{uuid4().hex[:8]}",
            primary_sku=primary_sku,
            supplier_sku=supplier_sku,
            barcodes=barcodes or [],
        )
        db_session.add(product)
        db_session.flush()
        db_session.add(InventoryLevel(product_id=product.id, quantity_on_hand=quantity))
        if variant_id is not None:
            db_session.add(ShopifyVariantMap(shopify_variant_id=variant_id, product_id=product.id))
        db_session.commit()
        return product

    return _factory


