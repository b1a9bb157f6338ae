from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional, List, Dict

class AggregateRating(BaseModel):
    average: float = 0.0
    count: int = 0

class SubjectCreate(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""
    role: str = "SME"
    email: Optional[str] = None

class SubjectRatingOut(BaseModel):
    subject_id: str
    average: float
    count: int

class RatingSubmit(BaseModel):
    rater_id: str
    rater_name: str = ""
    # Range is enforced by the aggregator so the domain error is raised before any write.
    score: int
    comment: Optional[str] = None

class RatingOut(BaseModel):
    id: str
    subject_id: str
    rater_id: str
    rater_name: str
    score: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NotificationOut(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    link: str
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class NotificationsMarked(BaseModel):
    updated: int

class ImportReport(BaseModel):
    parsed: int
    created: int
    updated: int
    skipped: int

class CleanupReport(BaseModel):
    dry_run: bool
    scanned: int
    unique_pairs: int
    removed_ids: List[str]
    subjects_recomputed: Dict[str, AggregateRating]

class AuditEntry(BaseModel):
    subject_id: str
    stored: AggregateRating
    computed: AggregateRating
    consistent: bool
    fixed: bool = False
