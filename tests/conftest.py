import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models import Department, Task, TaskPriority, TaskStatus, User
from app.utils.auth import build_token_claims
from app.utils.security import create_access_token, hash_password
from main import app

TEST_PASSWORD = "secret123"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_department(db):
    def _make(name="Operations", head_id=None):
        department = Department(name=name, head_id=head_id)
        db.add(department)
        db.commit()
        db.refresh(department)
        return department
    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="FIELD", name=None, capacity=8, department=None):
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            email=f"user{counter['n']}@example.com",
            hashed_password=_PASSWORD_HASH,
            role=role,
            capacity=capacity,
            department_id=department.id if department else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_task(db):
    def _make(title="Task", assignee=None, department=None, hours=None,
              status=TaskStatus.PENDING, priority=TaskPriority.MEDIUM, **extra):
        task = Task(
            title=title,
            assignee_id=assignee.id if assignee else None,
            department_id=department.id if department else None,
            estimated_hours=hours,
            status=status,
            priority=priority,
            **extra
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        return task
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token(build_token_claims(user))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def user_password():
    return TEST_PASSWORD
