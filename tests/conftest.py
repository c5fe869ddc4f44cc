"""Shared pytest fixtures."""

import pytest
from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool


@pytest.fixture
def engine():
    """In-memory SQLite engine with every table created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; emit it explicitly so SAVEPOINTs nest inside the transaction
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    # Import all models to register them
    from app.models import (  # noqa: F401
        DeliveryLog,
        NotificationPreference,
        NotificationRecord,
        NotificationTemplate,
        ScheduledNotification,
        User,
    )

    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture
def test_user(db_session: Session):
    """Create a test user with routing info for every channel."""
    from app.models.user import User

    user = User(
        email="student@example.com",
        name="Test Student",
        phone="0415555267",
        device_tokens=["device-token-1"],
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session: Session):
    """Create an administrator."""
    from app.models.user import User

    user = User(email="admin@example.com", name="Admin", is_admin=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
