"""SQL-backed rating and profile stores.

Every method is one round-trip against the database and commits its own
writes. A failed call rolls the session back and raises ``StoreUnavailable``;
writes committed by earlier calls stay in place.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import select, delete, func
from sqlalchemy.exc import ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from rating_service.errors import StoreUnavailable, SubjectNotFound, UnsupportedQuery
from rating_service.models import Rating, SubjectProfile

logger = logging.getLogger(__name__)


@contextmanager
def _store_call(db: Session, action: str, degradable: bool = False):
    try:
        yield
    except ProgrammingError as e:
        db.rollback()
        if not degradable:
            logger.error(f"Store call failed during {action}: {e}")
            raise StoreUnavailable(f"{action} failed: {e}") from e
        raise UnsupportedQuery(f"{action}: {e}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store call failed during {action}: {e}")
        raise StoreUnavailable(f"{action} failed: {e}") from e


class RatingStore:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, record: Rating) -> Rating:
        with _store_call(self.db, "insert rating"):
            if not record.id:
                record.id = Rating.new_id()
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        logger.info(f"Inserted rating {record.id} subject_id={record.subject_id} rater_id={record.rater_id}")
        return record

    def find_by_key(self, subject_id: str, rater_id: str) -> List[Rating]:
        with _store_call(self.db, "query ratings by key"):
            return list(
                self.db.execute(
                    select(Rating)
                    .where(Rating.subject_id == subject_id, Rating.rater_id == rater_id)
                    .order_by(Rating.created_at, Rating.id)
                ).scalars().all()
            )

    def update_by_key(self, match: Dict[str, Any], patch: Dict[str, Any]) -> Optional[Rating]:
        """Apply ``patch`` to the first record whose columns equal ``match``.

        Other records matching the same key are left alone.
        """
        with _store_call(self.db, "update rating"):
            conditions = [getattr(Rating, field) == value for field, value in match.items()]
            record = self.db.execute(
                select(Rating).where(*conditions).order_by(Rating.created_at, Rating.id).limit(1)
            ).scalar_one_or_none()
            if record is None:
                return None
            for field, value in patch.items():
                setattr(record, field, value)
            self.db.commit()
            self.db.refresh(record)
        logger.info(f"Updated rating {record.id} subject_id={record.subject_id} rater_id={record.rater_id}")
        return record

    def query_by_subject(self, subject_id: str) -> List[Rating]:
        with _store_call(self.db, "query ratings by subject"):
            return list(
                self.db.execute(select(Rating).where(Rating.subject_id == subject_id)).scalars().all()
            )

    def query_by_subject_newest_first(self, subject_id: str) -> List[Rating]:
        with _store_call(self.db, "ordered query ratings by subject", degradable=True):
            return list(
                self.db.execute(
                    select(Rating)
                    .where(Rating.subject_id == subject_id)
                    .order_by(func.coalesce(Rating.updated_at, Rating.created_at).desc().nulls_last(), Rating.id.desc())
                ).scalars().all()
            )

    def query_all(self) -> List[Rating]:
        with _store_call(self.db, "query all ratings"):
            return list(self.db.execute(select(Rating)).scalars().all())

    def delete_ids(self, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with _store_call(self.db, "delete ratings"):
            result = self.db.execute(delete(Rating).where(Rating.id.in_(ids)))
            self.db.commit()
        logger.info(f"Deleted {result.rowcount} rating record(s)")
        return result.rowcount


class ProfileStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, subject_id: str) -> Optional[SubjectProfile]:
        with _store_call(self.db, "read profile"):
            return self.db.get(SubjectProfile, subject_id)

    def exists(self, subject_id: str) -> bool:
        return self.get(subject_id) is not None

    def query_all(self) -> List[SubjectProfile]:
        with _store_call(self.db, "query profiles"):
            return list(self.db.execute(select(SubjectProfile).order_by(SubjectProfile.id)).scalars().all())

    def create(self, profile: SubjectProfile) -> SubjectProfile:
        with _store_call(self.db, "create profile"):
            self.db.add(profile)
            self.db.commit()
            self.db.refresh(profile)
        return profile

    def upsert(self, subject_id: str, fields: Dict[str, Any]) -> bool:
        """Create or update a profile. Returns True when a new profile was created."""
        with _store_call(self.db, "upsert profile"):
            profile = self.db.get(SubjectProfile, subject_id)
            created = profile is None
            if created:
                profile = SubjectProfile(id=subject_id)
                self.db.add(profile)
            for field, value in fields.items():
                setattr(profile, field, value)
            self.db.commit()
        return created

    def write_aggregate(self, subject_id: str, aggregate) -> None:
        with _store_call(self.db, "write aggregate"):
            profile = self.db.get(SubjectProfile, subject_id)
            if profile is None:
                raise SubjectNotFound(subject_id)
            profile.rating = aggregate.average
            profile.reviews = aggregate.count
            profile.updated_at = datetime.utcnow()
            self.db.commit()
        logger.info(f"Wrote aggregate subject_id={subject_id} average={aggregate.average} count={aggregate.count}")
