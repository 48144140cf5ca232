"""
Pytest configuration and fixtures for backend tests.

Database: SQLite in-memory with StaticPool, so every session (including the
ones the cycle runner opens) sees the same data.
Redis: replaced by the in-memory fakes in tests/fakes.py.
"""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import DistributionStrategy, OrderStatus, ScreenStatus
from shared.infrastructure.db import get_db
from kds_api.main import app
from kds_api.models import Base, Filter, Order, OrderItem, Queue, Screen, utcnow
from kds_api.services import Balancer, KdsContainer, PollingService, PushOrderFeed
from tests.fakes import InMemoryCursorStore, InMemoryScreenIndex, RecordingNotifier


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Store fakes and services
# =============================================================================


@pytest.fixture
def cursor_store():
    return InMemoryCursorStore()


@pytest.fixture
def screen_index():
    return InMemoryScreenIndex()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def balancer(cursor_store, screen_index):
    return Balancer(cursor_store, screen_index)


@pytest.fixture
def push_feed():
    return PushOrderFeed(max_pending=100)


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test engine. Depends on db_session for the schema."""
    return TestingSessionLocal


@pytest.fixture
def polling(session_factory, balancer, notifier, push_feed):
    """Cycle runner on the test database."""
    return PollingService(
        session_factory=session_factory,
        balancer=balancer,
        notifier=notifier,
        push_feed=push_feed,
        interval_seconds=0.01,
    )


@pytest.fixture
def container(cursor_store, screen_index, notifier, balancer, push_feed, polling):
    return KdsContainer(
        cursor_store=cursor_store,
        index=screen_index,
        notifier=notifier,
        balancer=balancer,
        push_feed=push_feed,
        polling=polling,
    )


@pytest.fixture(scope="function")
def client(db_session, container):
    """
    Test client with the database session and KDS components overridden.
    The lifespan is not run, so no PostgreSQL or Redis is needed.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.kds = container

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.kds = None


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_queue(db_session):
    """Create a queue, optionally with filters given as (pattern, suppress) pairs."""
    counter = iter(range(1, 10_000))

    def _make(
        name: str | None = None,
        strategy: str = DistributionStrategy.DISTRIBUTED,
        filters: list[tuple[str, bool]] = (),
        active: bool = True,
    ) -> Queue:
        queue = Queue(
            name=name or f"Queue {next(counter)}",
            strategy=strategy,
            active=active,
            filters=[Filter(pattern=pattern, suppress=suppress) for pattern, suppress in filters],
        )
        db_session.add(queue)
        db_session.commit()
        db_session.refresh(queue)
        return queue

    return _make


@pytest.fixture
def make_screen(db_session):
    counter = iter(range(1, 10_000))

    def _make(
        queue: Queue,
        name: str | None = None,
        status: str = ScreenStatus.ONLINE,
        last_heartbeat: datetime | None = None,
    ) -> Screen:
        n = next(counter)
        screen = Screen(
            name=name or f"Screen {n}",
            queue_id=queue.id,
            status=status,
            api_key=f"key-{queue.id}-{n}",
            last_heartbeat=last_heartbeat,
        )
        db_session.add(screen)
        db_session.commit()
        db_session.refresh(screen)
        return screen

    return _make


@pytest.fixture
def make_order(db_session):
    """Create an order with items given by name."""
    counter = iter(range(1, 100_000))

    def _make(
        items: list[str] = ("Burger",),
        status: str = OrderStatus.PENDING,
        screen_id: int | None = None,
        created_at: datetime | None = None,
        finished_at: datetime | None = None,
        external_id: str | None = None,
    ) -> Order:
        n = next(counter)
        order = Order(
            external_id=external_id or f"ext-{n}",
            identifier=f"#{n:03d}",
            status=status,
            screen_id=screen_id,
            finished_at=finished_at,
            items=[OrderItem(name=name, quantity=1) for name in items],
        )
        if created_at is not None:
            order.created_at = created_at
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make


@pytest.fixture
def hours_ago():
    def _at(hours: float) -> datetime:
        return utcnow() - timedelta(hours=hours)

    return _at
