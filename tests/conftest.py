import os
from datetime import datetime, timedelta
import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session")
def app_and_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("db") / "ratings.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"

    import importlib
    main_mod = importlib.import_module("rating_service.main")

    from rating_service.database import engine
    from rating_service.models import Base

    Base.metadata.create_all(bind=engine)
    return main_mod.app, engine


@pytest.fixture()
def client(app_and_engine):
    app, _ = app_and_engine
    return TestClient(app)


@pytest.fixture(autouse=True)
def _clean_db(app_and_engine):
    _, engine = app_and_engine
    from rating_service.models import Base

    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def db(app_and_engine):
    from rating_service.database import get_db_session

    with get_db_session() as session:
        yield session


@pytest.fixture()
def stores(db):
    from rating_service.stores import ProfileStore, RatingStore

    return RatingStore(db), ProfileStore(db)


@pytest.fixture()
def subject(stores):
    from rating_service.models import SubjectProfile

    _, profiles = stores
    profiles.create(SubjectProfile(id="S1", name="Thandi Mokoena", role="SME"))
    return "S1"


T0 = datetime(2025, 3, 1, 9, 0, 0)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture()
def add_rating(db):
    """Insert a raw rating record, bypassing the submit path."""
    from rating_service.models import Rating

    def _add(subject_id, rater_id, score, updated_at=None, created_at=None, record_id=None, comment=""):
        record = Rating(
            id=record_id or Rating.new_id(),
            subject_id=subject_id,
            rater_id=rater_id,
            rater_name=f"SDP {rater_id}",
            score=score,
            comment=comment,
            created_at=created_at if created_at is not None else updated_at,
            updated_at=updated_at,
        )
        db.add(record)
        db.commit()
        return record

    return _add
