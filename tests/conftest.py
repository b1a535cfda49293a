import os
import sys
from datetime import datetime, timedelta

# Ensure Python path includes project root for `import app`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Test environment: in-memory SQLite, UTC business hours, no Redis
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULING_TIMEZONE"] = "UTC"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["MARK_NOT_COMPLETE_POLICY"] = "cancel"
os.environ["HOLIDAYS"] = ""
os.environ["SERVICE_API_KEY"] = "test-service-key"
os.environ.pop("BUSINESS_HOURS", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.database import Base, get_db  # noqa: E402
from app.domain.scheduling.business_hours import BusinessHoursTable  # noqa: E402
from app.domain.scheduling.router import get_scheduling_service  # noqa: E402
from app.domain.scheduling.service import SchedulingService  # noqa: E402
from app.main import app  # noqa: E402

# Monday 2030-01-07 07:00 UTC
NOW = datetime(2030, 1, 7, 7, 0)
CHAT_ID = "6f1c2a9e-3b7d-4c55-9f0e-1a2b3c4d5e6f"
OTHER_CHAT_ID = "0d9e8f7a-6b5c-4d3e-8f1a-2b3c4d5e6f70"
TEACHER = "teacher-1"
STUDENT = "student-1"
OTHER_STUDENT = "student-2"
SERVICE_KEY = "test-service-key"


class FrozenClock:
    """Injectable clock returning naive UTC"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def set(self, value: datetime):
        self.now = value


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def business_hours():
    return BusinessHoursTable.from_mapping(None, "UTC")


@pytest.fixture
def service(db, business_hours, clock):
    return SchedulingService(db, business_hours=business_hours, clock=clock)


@pytest.fixture
def conversation(service):
    return service.link_conversation(CHAT_ID, TEACHER, STUDENT)


@pytest.fixture
def book(service, conversation):
    """Create a single appointment with sensible defaults"""

    def _book(date_time, duration=60, actor_id=STUDENT, chat_id=CHAT_ID, **kwargs):
        kwargs.setdefault("location_type", "online")
        kwargs.setdefault("location", "Video call")
        result = service.create_appointment(
            chat_id=chat_id,
            date_time=date_time,
            duration=duration,
            actor_id=actor_id,
            **kwargs,
        )
        return result.appointments[0]

    return _book


@pytest.fixture
def client(engine, business_hours, clock):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    def override_service():
        session = TestingSession()
        try:
            yield SchedulingService(session, business_hours=business_hours, clock=clock)
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduling_service] = override_service
    yield TestClient(app)
    app.dependency_overrides.clear()
