"""Pydantic models for the ExamHall application"""

from .user import Role, User, UserCreate
from .question import (
    QuestionType,
    CHOICE_TYPES,
    Difficulty,
    QuestionStatus,
    QuestionLifecycle,
    QuestionOption,
    QuestionCreate,
    QuestionUpdate,
    Question,
)
from .exam import (
    ExamType,
    ExamStatus,
    ExamLifecycle,
    ExamQuestionRef,
    ExamQuestionInput,
    ScheduleBuffer,
    ExamSchedule,
    ExamSettings,
    ExamEligibility,
    ExamCreate,
    ExamUpdate,
    ExamStatusUpdate,
    AssignStudents,
    Exam,
)
from .result import (
    AttemptStatus,
    FINISHED_STATUSES,
    Answer,
    SessionInfo,
    ScoringSummary,
    AttemptStats,
    Result,
    AnswerPatch,
    ProgressRequest,
    SubmitRequest,
    AnswerGrade,
    GradeRequest,
    BulkGradeItem,
    BulkGradeRequest,
)
