"""Question bank Pydantic models"""

from enum import Enum
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single-choice"
    MULTI_SELECT = "multi-select"
    TRUE_FALSE = "true-false"
    FILL_BLANK = "fill-blank"
    ESSAY = "essay"


# Types whose answer is a set of selected option indexes
CHOICE_TYPES = {QuestionType.SINGLE_CHOICE, QuestionType.MULTI_SELECT, QuestionType.TRUE_FALSE}


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"


class QuestionLifecycle(str, Enum):
    LIVE = "live"
    ARCHIVED = "archived"


class QuestionOption(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    is_correct: bool = False
    explanation: Optional[str] = Field(None, max_length=1000)


class QuestionCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)
    type: QuestionType = QuestionType.SINGLE_CHOICE
    options: List[QuestionOption] = []
    correct_answer: Optional[str] = None  # fill-blank reference answer, essay model answer
    marks: float = Field(1, ge=0.25, le=100)
    negative_marks: float = Field(0, ge=0, le=50)
    difficulty: Difficulty = Difficulty.MEDIUM
    subject: str = Field(..., min_length=1, max_length=100)
    topic: str = Field(..., min_length=1, max_length=100)
    tags: List[str] = []
    explanation: Optional[str] = Field(None, max_length=2000)
    status: QuestionStatus = QuestionStatus.ACTIVE


class QuestionUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=1, max_length=2000)
    type: Optional[QuestionType] = None
    options: Optional[List[QuestionOption]] = None
    correct_answer: Optional[str] = None
    marks: Optional[float] = Field(None, ge=0.25, le=100)
    negative_marks: Optional[float] = Field(None, ge=0, le=50)
    difficulty: Optional[Difficulty] = None
    subject: Optional[str] = Field(None, min_length=1, max_length=100)
    topic: Optional[str] = Field(None, min_length=1, max_length=100)
    tags: Optional[List[str]] = None
    explanation: Optional[str] = Field(None, max_length=2000)
    status: Optional[QuestionStatus] = None


class Question(BaseModel):
    model_config = ConfigDict(extra="ignore")
    question_id: str
    text: str
    type: QuestionType
    options: List[QuestionOption] = []
    correct_answer: Optional[str] = None
    marks: float = 1
    negative_marks: float = 0
    difficulty: Difficulty = Difficulty.MEDIUM
    subject: str
    topic: str
    tags: List[str] = []
    explanation: Optional[str] = None
    status: QuestionStatus = QuestionStatus.ACTIVE
    lifecycle: QuestionLifecycle = QuestionLifecycle.LIVE
    version: int = 1
    created_by: str
    last_modified_by: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
