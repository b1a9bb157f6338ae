from fastapi import FastAPI, Body, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import select
from typing import List
import logging

from prometheus_fastapi_instrumentator import Instrumentator

from rating_service.aggregation import recompute_aggregate, select_authoritative, submit_rating, effective_timestamp
from rating_service.config import CORS_ORIGINS, LOG_LEVEL
from rating_service.csv_import import parse_csv
from rating_service.database import get_db_session, engine
from rating_service.errors import InvalidReference, InvalidScore, RatingError, StoreUnavailable, SubjectNotFound
from rating_service.maintenance import audit_aggregates, cleanup_duplicate_ratings
from rating_service.models import Base, SubjectProfile
from rating_service.notifications import Notifier
from rating_service.queries import fetch_with_fallback
from rating_service.schemas import (
    AuditEntry,
    CleanupReport,
    ImportReport,
    NotificationOut,
    NotificationsMarked,
    RatingOut,
    RatingSubmit,
    SubjectCreate,
    SubjectRatingOut,
)
from rating_service.stores import ProfileStore, RatingStore

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Scholarz Rating Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator().instrument(app).expose(app)

def get_db():
    with get_db_session() as db:
        yield db

def http_error(e: RatingError) -> HTTPException:
    if isinstance(e, (InvalidScore, InvalidReference)):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, SubjectNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StoreUnavailable):
        return HTTPException(status_code=503, detail=f"Rating store unavailable: {e}")
    return HTTPException(status_code=500, detail=str(e))

@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)

@app.post("/subjects", response_model=SubjectRatingOut, status_code=201)
def create_subject(payload: SubjectCreate, db: Session = Depends(get_db)):
    profiles = ProfileStore(db)
    try:
        if profiles.exists(payload.id):
            raise HTTPException(status_code=409, detail="Subject already exists")
        profile = profiles.create(
            SubjectProfile(id=payload.id, name=payload.name, role=payload.role, email=payload.email)
        )
    except RatingError as e:
        raise http_error(e)
    return SubjectRatingOut(subject_id=profile.id, average=profile.rating, count=profile.reviews)

@app.post("/subjects/import", response_model=ImportReport)
def import_subjects(body: bytes = Body(..., media_type="text/csv"), db: Session = Depends(get_db)):
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail=f"CSV body must be UTF-8 encoded: {e}")
    records = parse_csv(text)

    profiles = ProfileStore(db)
    created = updated = skipped = 0
    try:
        for record in records:
            subject_id = record.get("id", "")
            if not subject_id:
                skipped += 1
                continue
            fields = {"name": record.get("name", ""), "role": record.get("role") or "SME"}
            if record.get("email"):
                fields["email"] = record["email"]
            if profiles.upsert(subject_id, fields):
                created += 1
            else:
                updated += 1
    except RatingError as e:
        raise http_error(e)

    logger.info(f"Imported subjects: {created} created, {updated} updated, {skipped} skipped")
    return ImportReport(parsed=len(records), created=created, updated=updated, skipped=skipped)

@app.get("/subjects/{subject_id}/rating", response_model=SubjectRatingOut)
def get_subject_rating(subject_id: str, db: Session = Depends(get_db)):
    try:
        profile = ProfileStore(db).get(subject_id)
    except RatingError as e:
        raise http_error(e)
    if profile is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    return SubjectRatingOut(subject_id=subject_id, average=profile.rating, count=profile.reviews)

@app.post("/subjects/{subject_id}/ratings", response_model=SubjectRatingOut, status_code=201)
def post_rating(subject_id: str, payload: RatingSubmit, db: Session = Depends(get_db)):
    try:
        aggregate = submit_rating(
            subject_id,
            payload.rater_id,
            payload.score,
            payload.comment,
            ratings=RatingStore(db),
            profiles=ProfileStore(db),
            rater_name=payload.rater_name,
            notifier=Notifier(db),
        )
    except RatingError as e:
        raise http_error(e)
    return SubjectRatingOut(subject_id=subject_id, **aggregate.model_dump())

@app.get("/subjects/{subject_id}/ratings", response_model=List[RatingOut])
def list_subject_ratings(subject_id: str, db: Session = Depends(get_db)):
    ratings = RatingStore(db)
    try:
        records = fetch_with_fallback(
            lambda: ratings.query_by_subject_newest_first(subject_id),
            lambda: ratings.query_by_subject(subject_id),
            key=lambda r: (effective_timestamp(r), r.id),
            reverse=True,
        )
    except RatingError as e:
        raise http_error(e)
    keep = {r.id for r in select_authoritative(records).values()}
    return [r for r in records if r.id in keep]

@app.post("/subjects/{subject_id}/rating/recompute", response_model=SubjectRatingOut)
def post_recompute(subject_id: str, db: Session = Depends(get_db)):
    try:
        aggregate = recompute_aggregate(subject_id, RatingStore(db), ProfileStore(db))
    except RatingError as e:
        raise http_error(e)
    return SubjectRatingOut(subject_id=subject_id, **aggregate.model_dump())

@app.post("/admin/ratings/cleanup", response_model=CleanupReport)
def post_cleanup(dry_run: bool = True, db: Session = Depends(get_db)):
    try:
        return cleanup_duplicate_ratings(RatingStore(db), ProfileStore(db), dry_run=dry_run)
    except RatingError as e:
        raise http_error(e)

@app.get("/admin/ratings/audit", response_model=List[AuditEntry])
def get_audit(fix: bool = False, db: Session = Depends(get_db)):
    try:
        return audit_aggregates(RatingStore(db), ProfileStore(db), fix=fix)
    except RatingError as e:
        raise http_error(e)

@app.get("/users/{user_id}/notifications", response_model=List[NotificationOut])
def list_notifications(user_id: str, db: Session = Depends(get_db)):
    try:
        return Notifier(db).for_user(user_id)
    except RatingError as e:
        raise http_error(e)

@app.patch("/users/{user_id}/notifications/read", response_model=NotificationsMarked)
def mark_all_notifications_read(user_id: str, db: Session = Depends(get_db)):
    try:
        updated = Notifier(db).mark_all_read(user_id)
    except RatingError as e:
        raise http_error(e)
    return NotificationsMarked(updated=updated)

@app.patch("/users/{user_id}/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(user_id: str, notification_id: str, db: Session = Depends(get_db)):
    try:
        notification = Notifier(db).mark_read(user_id, notification_id)
    except RatingError as e:
        raise http_error(e)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification

@app.get("/health", tags=["health"])
def health(db: Session = Depends(get_db)):
    try:
        db.execute(select(1))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database unavailable: {e}",
        )
    return {"status": "ok", "db": "ok"}
