# advanced_export/tests/conftest.py

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from advanced_export.core.db import Base
from advanced_export.exports.config import ExportConfig, LimitsConfig
from advanced_export.exports.entities import EntityRegistry
from advanced_export.notifications.services import ExportNotifier, InlineNotificationBackend
from advanced_export.tests.fakes import FakeQueue
from advanced_export.tests.sample_models import AuditLog, Customer, Region, Tag
from advanced_export.utils.storage import LocalDisk

import advanced_export.exports.models  # noqa: F401
import advanced_export.notifications.models  # noqa: F401


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of a test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session fixture for testing"""
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def export_config():
    """Default configuration with small chunks so streaming spans several batches"""
    return ExportConfig(limits=LimitsConfig(max_records=2000, chunk_size=2, queue_threshold=2000))


@pytest.fixture
def registry():
    """Fresh entity registry with the sample models"""
    registry = EntityRegistry()
    registry.register("customers", Customer, eager_loads=["region"])
    registry.register("audit_logs", AuditLog)
    registry.register("tags", Tag)
    return registry


@pytest.fixture
def customers_entity(registry):
    return registry.get("customers")


@pytest.fixture
def audit_entity(registry):
    return registry.get("audit_logs")


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def inline_backend():
    return InlineNotificationBackend()


@pytest.fixture
def notifier(export_config, inline_backend):
    return ExportNotifier(export_config, inline_backend)


@pytest.fixture
def local_disk(tmp_path):
    return LocalDisk(str(tmp_path / "storage"))


@pytest.fixture
def sample_customers(db_session):
    """Five customers across two regions, created on consecutive days"""
    north = Region(id=1, name="North")
    south = Region(id=2, name="South")
    db_session.add_all([north, south])

    base = datetime(2024, 1, 1, 9, 30)
    customers = [
        Customer(id=1, name="Alice", email="alice@example.com", status="active", active=True,
                 balance=Decimal("10.50"), region_id=1, created_at=base, updated_at=base),
        Customer(id=2, name="Bob", email=None, status="inactive", active=False,
                 balance=Decimal("0.00"), region_id=2, created_at=base + timedelta(days=1),
                 updated_at=base + timedelta(days=1)),
        Customer(id=3, name="Carol", email="carol@example.com", status="active", active=True,
                 balance=None, region_id=1, created_at=base + timedelta(days=2),
                 updated_at=base + timedelta(days=2)),
        Customer(id=4, name="Dave", email="dave@example.com", status="pending", active=True,
                 balance=Decimal("99.99"), region_id=None, created_at=base + timedelta(days=3),
                 updated_at=base + timedelta(days=3)),
        Customer(id=5, name="Eve", email="eve@example.com", status="active", active=False,
                 balance=Decimal("5.00"), region_id=2, created_at=base + timedelta(days=3),
                 updated_at=base + timedelta(days=3)),
    ]
    db_session.add_all(customers)
    db_session.commit()
    return customers
