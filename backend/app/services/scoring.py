"""
Attempt scoring.

``score_attempt`` is a pure function of (exam, questions, answers): no I/O and
no clock, so the same inputs always yield the same ScoreSheet. The percentage,
grade and pass formulas live here only; manual grading reuses ``summarize``.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.models.question import QuestionType, CHOICE_TYPES
from app.models.result import Answer, AttemptStats, ScoringSummary

# Percentage floor -> letter grade, checked top-down.
GRADE_BANDS = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C+"),
    (40, "C"),
    (30, "D"),
)
FAILING_GRADE = "F"


@dataclass
class ScoreSheet:
    answers: List[Answer]
    scoring: ScoringSummary
    stats: AttemptStats


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_percentage(marks_obtained: float, total_marks: float) -> int:
    if total_marks <= 0:
        return 0
    return round_half_up(marks_obtained / total_marks * 100)


def grade_for_percentage(percentage: float) -> str:
    for floor, grade in GRADE_BANDS:
        if percentage >= floor:
            return grade
    return FAILING_GRADE


def summarize(marks_obtained: float, total_marks: float, passing_marks: float) -> ScoringSummary:
    """Derive percentage, grade and pass flag from a mark total."""
    percentage = compute_percentage(marks_obtained, total_marks)
    return ScoringSummary(
        total_marks=total_marks,
        marks_obtained=marks_obtained,
        percentage=percentage,
        grade=grade_for_percentage(percentage),
        passed=marks_obtained >= passing_marks,
    )


def is_answered(answer: Answer) -> bool:
    return bool(answer.selected_options) or bool((answer.text_answer or "").strip())


def correct_option_indexes(question: Mapping[str, Any]) -> set:
    return {idx for idx, opt in enumerate(question.get("options") or []) if opt.get("is_correct")}


def evaluate_answer(question: Mapping[str, Any], answer: Answer) -> Optional[bool]:
    """
    Decide correctness of one answer.
    Returns None when the question type cannot be auto-scored (essay).
    """
    q_type = QuestionType(question["type"])

    if q_type == QuestionType.ESSAY:
        return None
    if not is_answered(answer):
        return False
    if q_type in CHOICE_TYPES:
        return set(answer.selected_options) == correct_option_indexes(question)
    if q_type == QuestionType.FILL_BLANK:
        expected = (question.get("correct_answer") or "").strip().lower()
        return bool(expected) and (answer.text_answer or "").strip().lower() == expected
    return False


def score_attempt(
    exam: Mapping[str, Any],
    questions: Mapping[str, Mapping[str, Any]],
    answers: Iterable[Any],
) -> ScoreSheet:
    """
    Score every exam question against the submitted answers.

    ``questions`` maps question_id -> question document. Answers may be dicts or
    Answer models; they are copied, never mutated.
    """
    by_question: Dict[str, Answer] = {}
    for raw in answers:
        answer = raw.model_copy(deep=True) if isinstance(raw, Answer) else Answer(**raw)
        by_question[answer.question_id] = answer

    scored: List[Answer] = []
    raw_total = 0.0
    attempted = correct = incorrect = flagged = 0
    total_time = 0

    for ref in sorted(exam.get("questions", []), key=lambda r: r["order"]):
        answer = by_question.get(ref["question_id"]) or Answer(question_id=ref["question_id"])
        question = questions.get(ref["question_id"])

        answered = is_answered(answer)
        verdict = evaluate_answer(question, answer) if question else False

        if verdict is None:
            # Essay: waits for manual grading
            answer.is_correct = False
            answer.marks_obtained = 0
            answer.review_status = "pending-review" if answered else "not-reviewed"
        elif verdict:
            answer.is_correct = True
            answer.marks_obtained = ref["marks"]
            correct += 1
        else:
            penalty = ref.get("negative_marks") or 0
            answer.is_correct = False
            answer.marks_obtained = -penalty if answered and penalty else 0
            if answered:
                incorrect += 1

        if answered:
            attempted += 1
        if answer.flagged:
            flagged += 1
        total_time += answer.time_spent
        raw_total += answer.marks_obtained
        scored.append(answer)

    marks_obtained = max(0.0, round(raw_total, 2))
    scoring = summarize(marks_obtained, exam["total_marks"], exam["passing_marks"])

    total_questions = len(scored)
    stats = AttemptStats(
        total_questions=total_questions,
        attempted=attempted,
        correct=correct,
        incorrect=incorrect,
        skipped=total_questions - attempted,
        flagged=flagged,
        total_time_spent=total_time,
        average_time_per_question=round(total_time / attempted, 2) if attempted else 0,
    )
    return ScoreSheet(answers=scored, scoring=scoring, stats=stats)
