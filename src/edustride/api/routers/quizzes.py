"""Quiz attempt endpoints.

    GET  /api/quizzes/{quiz_id}/attempts   the caller's last attempts
    POST /api/quizzes/{quiz_id}/attempts   submit answers for scoring

Multiple-choice and true/false answers are scored automatically against
the question's correctAnswer; other question types score zero until a
reviewer grades them. Passing a quiz linked to a skill nudges that skill's
progress up.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter

from edustride.api.deps import Cache, Coordinator, Store, UserId, ensure_owned
from edustride.api.errors import BadRequestError, NotFoundError
from edustride.api.schemas import AnswerIn, QuizAttemptOut, QuizAttemptResult, QuizSubmission
from edustride.cache import ACTIVITY_KINDS, EntityKind, InvalidationPlan
from edustride.cache.read_through import cached_read
from edustride.events.publisher import (
    achievement_unlocked_event,
    activity_event,
    quiz_completed_event,
    skill_progress_event,
)
from edustride.events.schemas import EventSpec
from edustride.persistence.tables import ActivityType, QuestionType, QuizAttemptTable, SkillTable

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])

ENTITY_TYPE = "quiz"
AUTO_SCORED = {QuestionType.MULTIPLE_CHOICE.value, QuestionType.TRUE_FALSE.value}
MAX_SKILL_BOOST = 10
PERFECT_SCORE = 100


@dataclass
class Score:
    score: int
    answers: list[dict[str, Any]]


def score_answers(questions: Sequence[dict[str, Any]], answers: Sequence[AnswerIn]) -> Score:
    """Score submitted answers against the quiz questions.

    Answers to unknown questions are ignored. The score is the percentage
    of points earned over the points of the questions answered.
    """
    by_id = {question.get("id"): question for question in questions}
    total_points = 0
    earned_points = 0
    scored = []
    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            continue
        points = int(question.get("points", 1))
        total_points += points
        correct = (
            question.get("type") in AUTO_SCORED
            and answer.answer == question.get("correctAnswer")
        )
        if correct:
            earned_points += points
        scored.append(
            {
                "questionId": answer.question_id,
                "answer": answer.answer,
                "isCorrect": correct,
                "points": points if correct else 0,
            }
        )
    score = round(earned_points / total_points * 100) if total_points else 0
    return Score(score=score, answers=scored)


def skill_boost(score: int) -> int:
    return min(MAX_SKILL_BOOST, score // 10)


@dataclass
class AttemptChange:
    attempt: QuizAttemptTable
    quiz_title: str
    skill: SkillTable | None = None
    old_progress: int | None = None


@router.get("/{quiz_id}/attempts")
async def list_attempts(
    quiz_id: str,
    user_id: UserId,
    store: Store,
    cache: Cache,
) -> dict[str, Any]:
    """The caller's ten most recent attempts at one of their quizzes."""
    ensure_owned(await store.quizzes.get(quiz_id), user_id, "Quiz", quiz_id)

    async def load() -> dict[str, Any]:
        attempts = await store.quizzes.attempts(quiz_id, user_id)
        return {"data": [QuizAttemptOut.model_validate(row).to_json() for row in attempts]}

    return await cached_read(cache, EntityKind.QUIZZES, user_id, {"quizId": quiz_id}, load)


@router.post("/{quiz_id}/attempts", status_code=201)
async def submit_attempt(
    quiz_id: str,
    body: QuizSubmission,
    user_id: UserId,
    store: Store,
    coordinator: Coordinator,
) -> dict[str, Any]:
    """Score and record an attempt."""
    quiz = await store.quizzes.get(quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz", quiz_id)
    if not quiz.is_active:
        raise BadRequestError("Quiz is not active")

    result = score_answers(quiz.questions, body.answers)
    passed = result.score >= quiz.passing_score
    feedback = (
        f"Congratulations! You passed with a score of {result.score}%."
        if passed
        else f"You scored {result.score}%. The passing score is {quiz.passing_score}%."
    )

    async def write() -> AttemptChange:
        attempt = await store.quizzes.record_attempt(
            quiz,
            user_id,
            score=result.score,
            passed=passed,
            answers=result.answers,
            feedback=feedback,
        )
        change = AttemptChange(attempt=attempt, quiz_title=quiz.title)
        await store.activities.record(
            user_id,
            ActivityType.QUIZ_COMPLETED.value,
            title=f"Completed quiz: {quiz.title}",
            description=f"Scored {result.score}%",
            entity_type=ENTITY_TYPE,
            entity_id=quiz.id,
            details={"score": result.score, "passed": passed},
        )
        if passed and quiz.skill_id:
            skill = await store.skills.get(quiz.skill_id)
            if skill is not None and skill.user_id == user_id:
                change.skill = skill
                change.old_progress = skill.progress
                await store.skills.update(
                    skill, progress=min(100, skill.progress + skill_boost(result.score))
                )
        await store.commit()
        return change

    plan = InvalidationPlan.for_entity(EntityKind.QUIZZES, user_id, related=ACTIVITY_KINDS)
    if quiz.skill_id:
        plan = plan.merge(InvalidationPlan.for_entity(EntityKind.SKILLS, user_id, quiz.skill_id))

    outcome = await coordinator.execute(user_id, write, invalidate=plan, events=_attempt_events)
    attempt = outcome.value.attempt
    message = "Quiz passed" if passed else "Quiz not passed"
    return QuizAttemptResult(
        attempt=QuizAttemptOut.model_validate(attempt),
        score=attempt.score,
        passed=attempt.passed,
        message=message,
    ).to_json()


def _attempt_events(change: AttemptChange) -> list[EventSpec]:
    attempt = change.attempt
    specs = [
        quiz_completed_event(
            attempt.quiz_id, attempt.id, change.quiz_title, attempt.score, attempt.passed
        ),
        activity_event(
            ActivityType.QUIZ_COMPLETED.value,
            ENTITY_TYPE,
            attempt.quiz_id,
            {"score": attempt.score, "passed": attempt.passed},
        ),
    ]
    if change.skill is not None:
        specs.append(
            skill_progress_event(
                change.skill.id, change.skill.name, change.old_progress, change.skill.progress
            )
        )
    if attempt.score == PERFECT_SCORE:
        specs.append(
            achievement_unlocked_event(
                "perfect-score",
                "Perfect score",
                f"You answered every question of {change.quiz_title} correctly",
                entity_type=ENTITY_TYPE,
                entity_id=attempt.quiz_id,
            )
        )
    return specs
