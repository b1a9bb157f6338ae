from datetime import datetime

import pytest

from rating_service.aggregation import (
    compute_aggregate,
    effective_timestamp,
    rating_message,
    round_average,
    select_authoritative,
    superseded,
    validate_submission,
)
from rating_service.errors import InvalidReference, InvalidScore
from rating_service.models import Rating
from tests.conftest import at


def _rating(rater_id, score, updated_at=None, created_at=None, record_id=None, subject_id="S1"):
    return Rating(
        id=record_id or Rating.new_id(),
        subject_id=subject_id,
        rater_id=rater_id,
        rater_name="",
        score=score,
        created_at=created_at,
        updated_at=updated_at,
    )


def test_distinct_raters_average_and_count():
    records = [_rating("A", 4, at(1)), _rating("B", 5, at(2))]
    assert compute_aggregate(records).model_dump() == {"average": 4.5, "count": 2}


def test_only_latest_record_per_rater_counts():
    records = [_rating("A", 4, at(1)), _rating("A", 2, at(3)), _rating("B", 5, at(2))]
    aggregate = compute_aggregate(records)
    assert aggregate.count == 2
    assert aggregate.average == 3.5


def test_empty_set_is_zero():
    assert compute_aggregate([]).model_dump() == {"average": 0.0, "count": 0}


def test_updated_at_falls_back_to_created_at():
    older = _rating("A", 1, updated_at=None, created_at=at(1))
    newer = _rating("A", 5, updated_at=None, created_at=at(5))
    assert select_authoritative([older, newer])["A"] is newer


def test_updated_at_preferred_over_created_at():
    edited = _rating("A", 3, updated_at=at(10), created_at=at(0))
    fresh = _rating("A", 5, updated_at=None, created_at=at(5))
    assert select_authoritative([fresh, edited])["A"] is edited


def test_missing_timestamps_lose_to_any_timestamp():
    undated = _rating("A", 1)
    assert effective_timestamp(undated) == datetime.min
    dated = _rating("A", 4, at(0))
    assert select_authoritative([undated, dated])["A"] is dated


def test_timestamp_tie_broken_by_greatest_record_id():
    a = _rating("A", 1, at(1), record_id="aaaa")
    b = _rating("A", 5, at(1), record_id="bbbb")
    assert select_authoritative([a, b])["A"] is b
    assert select_authoritative([b, a])["A"] is b


def test_superseded_lists_losers_per_subject_and_rater():
    keep = _rating("A", 2, at(3), record_id="keep")
    old = _rating("A", 4, at(1), record_id="old")
    other_subject = _rating("A", 4, at(1), record_id="other", subject_id="S2")
    assert [r.id for r in superseded([old, keep, other_subject])] == ["old"]


@pytest.mark.parametrize(
    "total,count,expected",
    [(9, 2, 4.5), (17, 4, 4.3), (10, 3, 3.3), (14, 3, 4.7), (87, 20, 4.3), (0, 0, 0.0)],
)
def test_round_average_half_up_to_one_decimal(total, count, expected):
    assert round_average(total, count) == expected


@pytest.mark.parametrize("score", [0, 6, -1, 4.5, "4", None, True])
def test_validate_rejects_bad_scores(score):
    with pytest.raises(InvalidScore):
        validate_submission("S1", "A", score)


@pytest.mark.parametrize("subject_id,rater_id,field", [("", "A", "subject_id"), ("S1", "", "rater_id"), (None, "A", "subject_id"), ("  ", "A", "subject_id"), ("S1", " \t", "rater_id")])
def test_validate_rejects_missing_ids(subject_id, rater_id, field):
    with pytest.raises(InvalidReference) as exc:
        validate_submission(subject_id, rater_id, 3)
    assert exc.value.field == field


def test_rating_message_truncates_long_comment():
    comment = "x" * 60
    assert rating_message("Acme SDP", 4, comment) == f"Acme SDP gave you a 4 star rating: {'x' * 50}..."
    assert rating_message("Acme SDP", 5, "") == "Acme SDP gave you a 5 star rating"
    assert rating_message("Acme SDP", 5, "Great") == "Acme SDP gave you a 5 star rating: Great"
