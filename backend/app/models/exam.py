"""Exam-related Pydantic models"""

from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime

from app.config import (
    DEFAULT_BUFFER_BEFORE_MINUTES,
    DEFAULT_BUFFER_AFTER_MINUTES,
    MAX_EXAM_DURATION_MINUTES,
    MAX_ATTEMPTS_LIMIT,
)


class ExamType(str, Enum):
    QUIZ = "quiz"
    FINAL = "final"
    PRACTICE = "practice"
    MOCK = "mock"


class ExamStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExamLifecycle(str, Enum):
    """Soft-delete flag, kept apart from the workflow status above."""
    LIVE = "live"
    ARCHIVED = "archived"


class ExamQuestionRef(BaseModel):
    """A question as placed in an exam, with the marks it carries there"""
    question_id: str
    marks: float = Field(..., ge=0.25)
    negative_marks: float = Field(0, ge=0)
    order: int


class ExamQuestionInput(BaseModel):
    question_id: str
    marks: Optional[float] = Field(None, ge=0.25)  # defaults to the question's own marks
    negative_marks: Optional[float] = Field(None, ge=0)
    order: Optional[int] = None


class ScheduleBuffer(BaseModel):
    before: int = Field(DEFAULT_BUFFER_BEFORE_MINUTES, ge=0)  # minutes
    after: int = Field(DEFAULT_BUFFER_AFTER_MINUTES, ge=0)


class ExamSchedule(BaseModel):
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    buffer: ScheduleBuffer = ScheduleBuffer()

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ExamSettings(BaseModel):
    randomize_questions: bool = False
    randomize_options: bool = False
    show_results: bool = True
    show_correct_answers: bool = False
    allow_review: bool = True
    auto_submit: bool = True
    max_attempts: int = Field(1, ge=1, le=MAX_ATTEMPTS_LIMIT)


class ExamEligibility(BaseModel):
    students: List[str] = []  # empty roster means open to every student


class ExamCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    subject: str = Field(..., min_length=1)
    type: ExamType = ExamType.QUIZ
    duration: int = Field(60, ge=5, le=MAX_EXAM_DURATION_MINUTES)  # minutes
    total_marks: Optional[float] = Field(None, ge=1)
    total_marks_override: bool = False
    passing_marks: float = Field(..., ge=0)
    questions: List[ExamQuestionInput] = []
    instructions: Optional[str] = Field(None, max_length=2000)
    schedule: ExamSchedule
    settings: ExamSettings = ExamSettings()
    eligibility: ExamEligibility = ExamEligibility()


class ExamUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    subject: Optional[str] = Field(None, min_length=1)
    type: Optional[ExamType] = None
    duration: Optional[int] = Field(None, ge=5, le=MAX_EXAM_DURATION_MINUTES)
    total_marks: Optional[float] = Field(None, ge=1)
    total_marks_override: Optional[bool] = None
    passing_marks: Optional[float] = Field(None, ge=0)
    questions: Optional[List[ExamQuestionInput]] = None
    instructions: Optional[str] = Field(None, max_length=2000)
    schedule: Optional[ExamSchedule] = None
    end_time: Optional[datetime] = None  # extend/shorten the window of a frozen exam
    settings: Optional[ExamSettings] = None
    eligibility: Optional[ExamEligibility] = None


class ExamStatusUpdate(BaseModel):
    status: ExamStatus


class AssignStudents(BaseModel):
    student_ids: List[str] = Field(..., min_length=1)


class Exam(BaseModel):
    model_config = ConfigDict(extra="ignore")
    exam_id: str
    title: str
    description: Optional[str] = None
    subject: str
    type: ExamType = ExamType.QUIZ
    duration: int
    total_marks: float
    total_marks_override: bool = False
    passing_marks: float
    questions: List[ExamQuestionRef] = []
    instructions: Optional[str] = None
    schedule: ExamSchedule
    settings: ExamSettings = ExamSettings()
    eligibility: ExamEligibility = ExamEligibility()
    status: ExamStatus = ExamStatus.DRAFT
    lifecycle: ExamLifecycle = ExamLifecycle.LIVE
    created_by: str
    last_modified_by: Optional[str] = None
    version: int = 1
    created_at: str
    updated_at: Optional[str] = None
