"""Repair jobs for the denormalized rating fields."""
from typing import List
import logging

from rating_service.aggregation import compute_aggregate, recompute_aggregate, superseded
from rating_service.schemas import AggregateRating, AuditEntry, CleanupReport

logger = logging.getLogger(__name__)


def cleanup_duplicate_ratings(ratings, profiles, dry_run: bool = True) -> CleanupReport:
    """Delete every rating record superseded by a newer one from the same rater.

    Subjects that have ratings and a profile get their aggregate recomputed
    afterwards. With ``dry_run`` nothing is deleted or recomputed.
    """
    records = ratings.query_all()
    unique_pairs = {(r.subject_id, r.rater_id) for r in records}
    losers = superseded(records)
    removed_ids = sorted(r.id for r in losers)

    logger.info(
        f"Scanned {len(records)} rating record(s), {len(unique_pairs)} unique pair(s), "
        f"{len(removed_ids)} duplicate(s){' (dry run)' if dry_run else ''}"
    )

    recomputed = {}
    if not dry_run:
        ratings.delete_ids(removed_ids)
        for subject_id in sorted({r.subject_id for r in records}):
            if not profiles.exists(subject_id):
                logger.warning(f"Ratings reference unknown subject {subject_id}, skipping recompute")
                continue
            recomputed[subject_id] = recompute_aggregate(subject_id, ratings, profiles)

    return CleanupReport(
        dry_run=dry_run,
        scanned=len(records),
        unique_pairs=len(unique_pairs),
        removed_ids=removed_ids,
        subjects_recomputed=recomputed,
    )


def audit_aggregates(ratings, profiles, fix: bool = False) -> List[AuditEntry]:
    entries = []
    for profile in profiles.query_all():
        stored = AggregateRating(average=profile.rating, count=profile.reviews)
        computed = compute_aggregate(ratings.query_by_subject(profile.id))
        entry = AuditEntry(subject_id=profile.id, stored=stored, computed=computed, consistent=stored == computed)

        if not entry.consistent:
            logger.warning(
                f"Rating mismatch for {profile.id}: stored {stored.average} ({stored.count}), "
                f"computed {computed.average} ({computed.count})"
            )
            if fix:
                profiles.write_aggregate(profile.id, computed)
                entry.fixed = True
        entries.append(entry)
    return entries
