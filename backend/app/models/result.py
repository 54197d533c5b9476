"""Attempt / result Pydantic models"""

from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List, Dict, Any


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    SUBMITTED = "submitted"
    AUTO_SUBMITTED = "auto-submitted"
    GRADED = "graded"


# Every status reached after the student hands the attempt in
FINISHED_STATUSES = {
    AttemptStatus.COMPLETED,
    AttemptStatus.SUBMITTED,
    AttemptStatus.AUTO_SUBMITTED,
    AttemptStatus.GRADED,
}


class Answer(BaseModel):
    model_config = ConfigDict(extra="ignore")
    question_id: str
    selected_options: List[int] = []  # option indexes
    text_answer: Optional[str] = None
    is_correct: bool = False
    marks_obtained: float = 0
    time_spent: int = 0  # seconds
    flagged: bool = False
    review_status: str = "not-reviewed"  # not-reviewed, pending-review, graded
    review_comments: Optional[str] = None


class SessionInfo(BaseModel):
    start_time: str
    end_time: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ScoringSummary(BaseModel):
    total_marks: float
    marks_obtained: float = 0
    percentage: int = 0
    grade: str = "F"
    passed: bool = False


class AttemptStats(BaseModel):
    total_questions: int
    attempted: int = 0
    correct: int = 0
    incorrect: int = 0
    skipped: int = 0
    flagged: int = 0
    total_time_spent: int = 0  # seconds
    average_time_per_question: float = 0


class Result(BaseModel):
    model_config = ConfigDict(extra="ignore")
    result_id: str
    student_id: str
    exam_id: str
    attempt_number: int = 1
    answers: List[Answer] = []
    session: SessionInfo
    scoring: ScoringSummary
    stats: AttemptStats
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    submitted_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    feedback: Dict[str, Any] = {}
    created_at: str
    updated_at: Optional[str] = None


# ============== REQUEST BODIES ==============

class AnswerPatch(BaseModel):
    """Partial update of one answer slot; only the fields sent are applied"""
    question_id: str
    selected_options: Optional[List[int]] = None
    text_answer: Optional[str] = None
    time_spent: Optional[int] = Field(None, ge=0)
    flagged: Optional[bool] = None

    @model_validator(mode="after")
    def check_indexes(self):
        if self.selected_options and any(i < 0 for i in self.selected_options):
            raise ValueError("selected_options must be non-negative option indexes")
        return self


class ProgressRequest(BaseModel):
    answers: List[AnswerPatch] = []


class SubmitRequest(ProgressRequest):
    auto: bool = False  # set by the client timer when the clock runs out


class AnswerGrade(BaseModel):
    question_id: str
    marks_awarded: float
    comments: Optional[str] = None


class GradeRequest(BaseModel):
    score: Optional[float] = None
    answers: Optional[List[AnswerGrade]] = None
    feedback: Optional[str] = None

    @model_validator(mode="after")
    def check_score_source(self):
        if self.score is None and not self.answers:
            raise ValueError("Either score or per-question answers must be provided")
        return self


class BulkGradeItem(GradeRequest):
    result_id: str


class BulkGradeRequest(BaseModel):
    # Validated per entry in services.grading.bulk_grade
    grades: List[Dict[str, Any]] = Field(..., min_length=1)
