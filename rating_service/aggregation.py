"""Rating aggregation.

A subject's displayed rating is recomputed from scratch on every submission:
all stored records are read, each rater's most recent record is kept, and the
mean of those scores is written back onto the subject profile.

The store does not enforce one record per (subject, rater); concurrent
submissions can leave duplicates behind. Selecting one authoritative record
per rater here is what keeps the average correct when that happens.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional
import logging

from rating_service.config import NOTIFY_COMMENT_PREVIEW
from rating_service.errors import InvalidReference, InvalidScore, SubjectNotFound
from rating_service.models import Rating
from rating_service.schemas import AggregateRating

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5


def effective_timestamp(record: Rating) -> datetime:
    return record.updated_at or record.created_at or datetime.min


def _recency(record: Rating):
    # Equal timestamps fall back to the greater record id.
    return (effective_timestamp(record), record.id or "")


def group_by_rater(records: Iterable[Rating]) -> Dict[str, List[Rating]]:
    buckets: Dict[str, List[Rating]] = {}
    for record in records:
        buckets.setdefault(record.rater_id, []).append(record)
    return buckets


def select_authoritative(records: Iterable[Rating]) -> Dict[str, Rating]:
    """Map each rater to the one record that counts for them."""
    return {rater_id: max(bucket, key=_recency) for rater_id, bucket in group_by_rater(records).items()}


def superseded(records: Iterable[Rating]) -> List[Rating]:
    """Records that lost to a newer record from the same rater for the same subject."""
    by_pair: Dict[tuple, List[Rating]] = {}
    for record in records:
        by_pair.setdefault((record.subject_id, record.rater_id), []).append(record)

    losers = []
    for bucket in by_pair.values():
        if len(bucket) < 2:
            continue
        keep = max(bucket, key=_recency)
        losers.extend(r for r in bucket if r is not keep)
    return losers


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def round_average(total: int, count: int) -> float:
    if count == 0:
        return 0.0
    # Round the float mean itself, so 87/20 (4.3499...) gives 4.3 as the dashboard shows.
    mean = Decimal(total / count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_aggregate(records: Iterable[Rating]) -> AggregateRating:
    scores = [r.score for r in select_authoritative(records).values()]
    return AggregateRating(average=round_average(sum(scores), len(scores)), count=len(scores))


def recompute_aggregate(subject_id: str, ratings, profiles) -> AggregateRating:
    """Recompute and persist the aggregate for ``subject_id``.

    A failed read raises ``StoreUnavailable`` before anything is written, so the
    stored aggregate is left as it was.
    """
    if _blank(subject_id):
        raise InvalidReference("subject_id")

    records = ratings.query_by_subject(subject_id)
    aggregate = compute_aggregate(records)
    profiles.write_aggregate(subject_id, aggregate)

    if aggregate.count != len(records):
        logger.info(
            f"Ignored {len(records) - aggregate.count} superseded rating record(s) for subject_id={subject_id}"
        )
    return aggregate


def validate_submission(subject_id: str, rater_id: str, score) -> None:
    if _blank(subject_id):
        raise InvalidReference("subject_id")
    if _blank(rater_id):
        raise InvalidReference("rater_id")
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScore(score)


def rating_message(rater_name: str, score: int, comment: Optional[str]) -> str:
    message = f"{rater_name} gave you a {score} star rating"
    if comment:
        preview = comment[:NOTIFY_COMMENT_PREVIEW]
        if len(comment) > NOTIFY_COMMENT_PREVIEW:
            preview += "..."
        message += f": {preview}"
    return message


def submit_rating(
    subject_id: str,
    rater_id: str,
    score: int,
    comment: Optional[str],
    ratings,
    profiles,
    rater_name: str = "",
    notifier=None,
    now: Optional[datetime] = None,
) -> AggregateRating:
    validate_submission(subject_id, rater_id, score)

    if not profiles.exists(subject_id):
        raise SubjectNotFound(subject_id)

    now = now or datetime.utcnow()
    patch = {"score": score, "comment": comment or "", "rater_name": rater_name, "updated_at": now}

    updated = ratings.update_by_key({"subject_id": subject_id, "rater_id": rater_id}, patch)
    if updated is None:
        ratings.insert(
            Rating(
                id=Rating.new_id(),
                subject_id=subject_id,
                rater_id=rater_id,
                created_at=now,
                **patch,
            )
        )

    aggregate = recompute_aggregate(subject_id, ratings, profiles)

    if notifier is not None:
        try:
            notifier.notify(
                subject_id,
                rating_message(rater_name or rater_id, score, comment),
                type="rating",
                title="New Rating Received",
                link="/dashboard?tab=profile",
                metadata={"rating": score, "rater_id": rater_id, "rater_name": rater_name},
            )
        except Exception as e:
            logger.warning(f"Failed to notify subject {subject_id} of new rating: {e}")

    return aggregate
