"""Teacher-side grading of submitted attempts.

Manual and AI-suggested scores for free-text answers are staged locally as
"dirty" values and persisted in one batch by ``save``.
"""
import asyncio
import logging
import math
from typing import Dict, List, Optional, Set, Tuple, Union

from eduportal.clients.assessment_api import AssessmentApiClient
from eduportal.core.constants import AttemptStatusEnum, NotificationLevelEnum
from eduportal.core.exceptions import ApiError, ReviewStateError
from eduportal.schemas.answer import AnswerReview
from eduportal.schemas.attempt import AssessmentAttempt
from eduportal.schemas.evaluation import EvaluationRequest, EvaluationResult
from eduportal.schemas.notification import Notification
from eduportal.schemas.review import SaveReport
from eduportal.services.evaluation import keyword_match_evaluation

logger = logging.getLogger(__name__)


class ScoreReconciler:
    def __init__(self, api: AssessmentApiClient, notify=None):
        self.api = api
        self._notify = notify
        self.assessment_id: Optional[str] = None
        self.attempts: List[AssessmentAttempt] = []
        self.answers: Dict[str, List[AnswerReview]] = {}
        self.expanded: Set[str] = set()
        self.manual_scores: Dict[str, float] = {}
        self.evaluated: Set[str] = set()
        self.evaluating: Set[str] = set()
        self.feedback: Dict[str, EvaluationResult] = {}

    def _emit(self, level: NotificationLevelEnum, title: str, message: str = ""):
        if self._notify:
            self._notify(Notification(level=level, title=title, message=message))

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self.manual_scores)

    def _find_answer(self, answer_id: str) -> AnswerReview:
        for answers in self.answers.values():
            for answer in answers:
                if answer.id == answer_id:
                    return answer
        raise KeyError(answer_id)

    def _require_free_text(self, answer_id: str) -> AnswerReview:
        answer = self._find_answer(answer_id)
        if not answer.is_free_text:
            raise ReviewStateError("Multiple-choice answers are scored automatically and cannot be changed.")
        return answer

    # Loading

    async def load_attempts(self, assessment_id: str) -> List[AssessmentAttempt]:
        self.assessment_id = assessment_id
        attempts = await self.api.get_assessment_attempts(assessment_id)
        self.attempts = [a for a in attempts if a.status == AttemptStatusEnum.COMPLETED]
        return self.attempts

    async def expand(self, attempt_id: str) -> List[AnswerReview]:
        if attempt_id not in self.answers:
            try:
                self.answers[attempt_id] = await self.api.get_attempt_answers(attempt_id)
            except ApiError as e:
                logger.error(f"Failed to load answers for attempt {attempt_id}: {e}")
                self._emit(NotificationLevelEnum.ERROR, "Failed to load answers", e.message)
                raise
        self.expanded.add(attempt_id)
        return self.answers[attempt_id]

    def collapse(self, attempt_id: str) -> None:
        self.expanded.discard(attempt_id)

    # Scoring

    def score_for(self, answer_id: str) -> float:
        if answer_id in self.manual_scores:
            return self.manual_scores[answer_id]
        return self._find_answer(answer_id).points_earned or 0

    def set_manual_score(self, answer_id: str, value: Union[str, float, None]) -> Optional[float]:
        """Stage a score for a free-text answer. Non-numeric input is ignored."""
        answer = self._require_free_text(answer_id)
        try:
            score = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(score):
            return None

        score = max(0.0, min(float(answer.question_points), score))
        if score == (answer.points_earned or 0):
            self.manual_scores.pop(answer_id, None)
        else:
            self.manual_scores[answer_id] = score
        return score

    async def _suggest(self, answer: AnswerReview) -> EvaluationResult:
        request = EvaluationRequest(
            question=answer.question_text,
            expected_answer=answer.expected_answer,
            student_answer=answer.text_answer or "",
            max_points=answer.question_points,
        )
        try:
            return await self.api.evaluate_answer(request)
        except ApiError as e:
            logger.warning(f"AI evaluation failed for answer {answer.id}, using keyword matching: {e}")
            return keyword_match_evaluation(answer.expected_answer, answer.text_answer, answer.question_points)

    def _apply_suggestion(self, answer: AnswerReview, result: EvaluationResult) -> None:
        self.manual_scores[answer.id] = float(min(max(result.suggested_score, 0), answer.question_points))
        self.feedback[answer.id] = result
        self.evaluated.add(answer.id)

    async def evaluate(self, answer_id: str) -> EvaluationResult:
        answer = self._require_free_text(answer_id)
        if answer_id in self.evaluating:
            raise ReviewStateError(f"Answer {answer_id} is already being evaluated.")
        if answer_id in self.evaluated:
            raise ReviewStateError(f"Answer {answer_id} was already evaluated; save before evaluating again.")

        self.evaluating.add(answer_id)
        try:
            result = await self._suggest(answer)
        finally:
            self.evaluating.discard(answer_id)
        self._apply_suggestion(answer, result)
        self._emit(
            NotificationLevelEnum.SUCCESS,
            "AI Evaluation Complete",
            f"Suggested score: {result.suggested_score}/{answer.question_points}",
        )
        return result

    async def evaluate_all(self) -> Dict[str, EvaluationResult]:
        targets = [
            answer
            for attempt_id in self.expanded
            for answer in self.answers.get(attempt_id, [])
            if answer.is_free_text and answer.id not in self.evaluated and answer.id not in self.evaluating
        ]
        if not targets:
            self._emit(NotificationLevelEnum.INFO, "Nothing to evaluate", "All text answers have already been evaluated.")
            return {}

        self.evaluating.update(answer.id for answer in targets)
        try:
            results = await asyncio.gather(*(self._suggest(answer) for answer in targets))
        finally:
            self.evaluating.difference_update(answer.id for answer in targets)
        for answer, result in zip(targets, results):
            self._apply_suggestion(answer, result)

        logger.info(f"Evaluated {len(targets)} answers for assessment {self.assessment_id}")
        self._emit(NotificationLevelEnum.SUCCESS, "Evaluation Complete", f"Evaluated {len(targets)} answers.")
        return {answer.id: result for answer, result in zip(targets, results)}

    # Persistence

    async def _save_one(self, answer_id: str, score: float) -> Tuple[str, Union[AnswerReview, ApiError]]:
        try:
            return answer_id, await self.api.update_answer_score(answer_id, score)
        except ApiError as e:
            return answer_id, e

    def _replace_cached(self, review: AnswerReview) -> None:
        for answers in self.answers.values():
            for i, answer in enumerate(answers):
                if answer.id == review.id:
                    answers[i] = review
                    return

    async def save(self) -> SaveReport:
        pending = dict(self.manual_scores)
        if not pending:
            return SaveReport()

        outcomes = await asyncio.gather(*(self._save_one(answer_id, score) for answer_id, score in pending.items()))

        report = SaveReport()
        for answer_id, outcome in outcomes:
            if isinstance(outcome, AnswerReview):
                report.saved.append(answer_id)
                self._replace_cached(outcome)
                # Keep the marker if the value was edited again while saving
                if self.manual_scores.get(answer_id) == pending[answer_id]:
                    del self.manual_scores[answer_id]
                self.evaluated.discard(answer_id)
                self.feedback.pop(answer_id, None)
            else:
                report.failed[answer_id] = outcome.message

        if report.saved:
            await self.refresh()

        if report.failed:
            logger.warning(
                f"Saved {len(report.saved)} of {len(pending)} scores; failed: {sorted(report.failed)}"
            )
            self._emit(
                NotificationLevelEnum.ERROR,
                "Some scores were not saved",
                f"{len(report.failed)} of {len(pending)} scores failed to save. They are kept for retry.",
            )
        else:
            self._emit(NotificationLevelEnum.SUCCESS, "Scores Saved", f"Saved {len(report.saved)} scores.")
        return report

    async def refresh(self) -> None:
        if self.assessment_id is None:
            return
        try:
            await self.load_attempts(self.assessment_id)
            for attempt_id in list(self.expanded):
                self.answers[attempt_id] = await self.api.get_attempt_answers(attempt_id)
        except ApiError as e:
            logger.error(f"Failed to refresh attempts for assessment {self.assessment_id}: {e}")
            self._emit(NotificationLevelEnum.WARNING, "Failed to refresh results", e.message)
