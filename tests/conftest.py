import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend import create_app
from roster_module.database import Base, get_db_session
from roster_module.models import Course, RecordStatus, Student, Teacher
from roster_module.security import create_session_token


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    app = create_app(init_db=False)

    def override_db_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = override_db_session
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers():
    token = create_session_token("user-1", email="admin@school.local")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def school(db):
    """Two courses, two teachers and a small roster; ids are returned by name."""
    math = Course(name="Mathematics", status=RecordStatus.ACTIVE)
    art = Course(name="Art", status=RecordStatus.INACTIVE)
    db.add_all([math, art])
    db.flush()

    alice = Teacher(name="Alice", email="alice@school.local", subject="Mathematics", status=RecordStatus.ACTIVE)
    bob = Teacher(name="Bob", email="bob@school.local", subject="Art", status=RecordStatus.INACTIVE)
    db.add_all([alice, bob])

    students = [
        Student(name="Sam", email="sam@school.local", course_id=math.id, status=RecordStatus.ACTIVE),
        Student(name="Lee", email="lee@school.local", course_id=math.id, status=RecordStatus.ACTIVE),
        Student(name="Kim", email="kim@school.local", course_id=math.id, status=RecordStatus.ACTIVE),
        Student(name="Old", email="old@school.local", course_id=math.id, status=RecordStatus.INACTIVE),
        Student(name="Ana", email="ana@school.local", course_id=art.id, status=RecordStatus.ACTIVE),
    ]
    db.add_all(students)
    db.commit()

    return {
        "math": math.id,
        "art": art.id,
        "alice": alice.id,
        "bob": bob.id,
        "sam": students[0].id,
        "lee": students[1].id,
        "kim": students[2].id,
        "old": students[3].id,
        "ana": students[4].id,
    }
