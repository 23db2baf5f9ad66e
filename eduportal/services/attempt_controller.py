"""Student-side lifecycle of one timed assessment attempt.

The controller owns the countdown and the in-progress answers, talks to the
Assessment API through an injected client, and reports to the host through
three callbacks: ``confirm`` for submitting with unanswered questions,
``notify`` for transient messages and ``redirect`` for leaving the attempt.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from eduportal.clients.assessment_api import AssessmentApiClient
from eduportal.core.config import settings
from eduportal.core.constants import (
    AttemptStateEnum,
    NotificationLevelEnum,
    QuestionTypeEnum,
    RedirectTargetEnum,
    SubmitTriggerEnum,
)
from eduportal.core.exceptions import ApiError, AttemptStateError
from eduportal.schemas.answer import AnswerResponse, FreeTextResponse, MultipleChoiceResponse, SubmitAnswer
from eduportal.schemas.assessment import Assessment
from eduportal.schemas.attempt import AssessmentAttempt
from eduportal.schemas.notification import Notification
from eduportal.schemas.question import Question
from eduportal.services.answer_store import AnswerStore
from eduportal.services.timer import CountdownTimer, remaining_seconds

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[List[str]], Awaitable[bool]]
NotifyCallback = Callable[[Notification], None]
RedirectCallback = Callable[[RedirectTargetEnum, Optional[str]], None]


class AttemptController:
    def __init__(
        self,
        api: AssessmentApiClient,
        assessment_id: str,
        confirm: ConfirmCallback,
        notify: Optional[NotifyCallback] = None,
        redirect: Optional[RedirectCallback] = None,
        tick_interval: Optional[float] = None,
        redirect_delay: Optional[float] = None,
        resume_in_progress: Optional[bool] = None,
    ):
        self.api = api
        self.assessment_id = assessment_id
        self._confirm = confirm
        self._notify = notify
        self._redirect = redirect
        self.tick_interval = tick_interval if tick_interval is not None else settings.TIMER_TICK_SECONDS
        self.redirect_delay = redirect_delay if redirect_delay is not None else settings.REDIRECT_DELAY_SECONDS
        self.resume_in_progress = (
            resume_in_progress if resume_in_progress is not None else settings.RESUME_IN_PROGRESS_ATTEMPTS
        )

        self.state = AttemptStateEnum.UNINITIALIZED
        self.assessment: Optional[Assessment] = None
        self.questions: List[Question] = []
        self.attempt: Optional[AssessmentAttempt] = None
        self.result: Optional[AssessmentAttempt] = None
        self.current_index = 0
        self.store = AnswerStore()
        self.timer: Optional[CountdownTimer] = None

        self._submission_initiated = False
        self._time_expired = False
        self._closed = False

    # Lifecycle

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remaining_seconds(self) -> int:
        return self.timer.remaining if self.timer else 0

    @property
    def time_expired(self) -> bool:
        return self._time_expired

    def _set_state(self, state: AttemptStateEnum) -> None:
        logger.info(f"Attempt on assessment {self.assessment_id}: {self.state.value} -> {state.value}")
        self.state = state

    def _emit(self, level: NotificationLevelEnum, title: str, message: str = "") -> None:
        if self._closed or not self._notify:
            return
        self._notify(Notification(level=level, title=title, message=message))

    async def _leave(self, target: RedirectTargetEnum, attempt_id: Optional[str] = None) -> None:
        self._set_state(AttemptStateEnum.REDIRECTED)
        if self.redirect_delay > 0:
            await asyncio.sleep(self.redirect_delay)
        if self._closed or not self._redirect:
            return
        self._redirect(target, attempt_id)

    async def initialize(self) -> None:
        if self.state != AttemptStateEnum.UNINITIALIZED:
            raise AttemptStateError(f"Attempt controller already {self.state.value}")
        self._set_state(AttemptStateEnum.LOADING)

        try:
            attempt_status = await self.api.get_attempt_status(self.assessment_id)
        except ApiError as e:
            await self._fail_initialization(e)
            return
        if self._closed:
            return

        existing = attempt_status.attempt if attempt_status.has_attempted else None
        if attempt_status.has_attempted:
            resumable = existing is not None and not existing.is_completed and self.resume_in_progress
            if not resumable:
                await self._redirect_already_attempted(existing)
                return

        try:
            assessment = await self.api.get_assessment(self.assessment_id)
            questions = await self.api.get_questions(self.assessment_id)
            if self._closed:
                return
            attempt = existing or await self.api.start_attempt(self.assessment_id)
        except ApiError as e:
            await self._fail_initialization(e)
            return
        if self._closed:
            return

        if existing:
            seconds = remaining_seconds(existing.started_at, assessment.duration_minutes)
            logger.info(f"Resuming attempt {existing.id} with {seconds}s left")
        else:
            seconds = assessment.duration_minutes * 60

        self.assessment = assessment
        self.questions = questions
        self.attempt = attempt
        self.current_index = 0
        self.timer = CountdownTimer(seconds, on_expire=self._on_time_expired, tick_interval=self.tick_interval)
        self._set_state(AttemptStateEnum.ACTIVE)
        self.timer.start()

    async def _redirect_already_attempted(self, attempt: Optional[AssessmentAttempt]) -> None:
        released = bool(attempt and attempt.results_released)
        if attempt is not None and not attempt.is_completed:
            title = "Assessment already started"
            message = "You have already started this assessment and it cannot be restarted."
            target = RedirectTargetEnum.COURSES
        elif released:
            title = "Assessment already completed"
            message = "You have already completed this assessment. Redirecting to your results..."
            target = RedirectTargetEnum.RESULTS
        else:
            title = "Assessment already completed"
            message = "You have already completed this assessment. Results will be available once released by your teacher."
            target = RedirectTargetEnum.COURSES
        logger.info(f"Assessment {self.assessment_id} already attempted; redirecting to {target.value}")
        self._emit(NotificationLevelEnum.INFO, title, message)
        await self._leave(target, attempt.id if attempt else None)

    async def _fail_initialization(self, error: ApiError) -> None:
        if self._closed:
            return
        logger.error(f"Failed to load assessment {self.assessment_id}: {error}")
        self.assessment = None
        self.questions = []
        self.attempt = None
        self._emit(NotificationLevelEnum.ERROR, "Failed to load assessment", error.message)
        await self._leave(RedirectTargetEnum.COURSES)

    def close(self) -> None:
        """End the controller's lifetime. Late completions become no-ops."""
        if self._closed:
            return
        self._closed = True
        if self.timer:
            self.timer.cancel()
        logger.info(f"Attempt controller for assessment {self.assessment_id} closed in state {self.state.value}")

    # Navigation

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return bool(self.questions) and self.current_index == len(self.questions) - 1

    @property
    def progress(self) -> float:
        if not self.questions:
            return 0.0
        return (self.current_index + 1) / len(self.questions) * 100

    def go_to(self, index: int) -> None:
        if not 0 <= index < len(self.questions):
            raise IndexError(f"Question index {index} out of range")
        self.current_index = index

    def next(self) -> bool:
        if self.current_index + 1 >= len(self.questions):
            return False
        self.current_index += 1
        return True

    def previous(self) -> bool:
        if self.current_index == 0:
            return False
        self.current_index -= 1
        return True

    # Answers

    def _question(self, question_id: str) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise KeyError(question_id)

    def set_answer(self, question_id: str, response: AnswerResponse) -> None:
        if self.state != AttemptStateEnum.ACTIVE:
            raise AttemptStateError(f"Cannot change answers while {self.state.value}")
        if self._time_expired:
            raise AttemptStateError("Cannot change answers after time has run out")
        question = self._question(question_id)
        if response.kind != question.question_type:
            raise ValueError(f"Question {question_id} expects a {question.question_type} response")
        if isinstance(response, MultipleChoiceResponse) and not question.has_option(response.selected_option_id):
            raise ValueError(f"Option {response.selected_option_id} does not belong to question {question_id}")
        self.store.set_answer(question_id, response)

    def get_answer(self, question_id: str) -> Optional[AnswerResponse]:
        return self.store.get_answer(question_id)

    def unanswered_question_ids(self) -> List[str]:
        unanswered = []
        for question in self.questions:
            response = self.store.get_answer(question.id)
            if response is None:
                unanswered.append(question.id)
            elif isinstance(response, FreeTextResponse) and not response.text.strip():
                unanswered.append(question.id)
        return unanswered

    def build_submission(self) -> List[SubmitAnswer]:
        """One entry per question, in question order. Untouched questions go empty."""
        answers = []
        for question in self.questions:
            response = self.store.get_answer(question.id)
            if question.question_type == QuestionTypeEnum.MULTIPLE_CHOICE:
                selected = response.selected_option_id if isinstance(response, MultipleChoiceResponse) else None
                answers.append(SubmitAnswer(question_id=question.id, selected_option_id=selected))
            else:
                text = response.text if isinstance(response, FreeTextResponse) else None
                answers.append(SubmitAnswer(question_id=question.id, text_answer=text))
        return answers

    # Submission

    async def _on_time_expired(self) -> None:
        self._time_expired = True
        if self._closed:
            return
        self._emit(NotificationLevelEnum.WARNING, "Time's up!", "Your answers are being submitted automatically.")
        await self.submit(SubmitTriggerEnum.TIMEOUT)

    async def submit(self, trigger: SubmitTriggerEnum = SubmitTriggerEnum.MANUAL) -> bool:
        """Submit every question's answer. Returns True once the server accepted them."""
        if self._closed or self._submission_initiated:
            logger.info(f"Ignoring {trigger.value} submit on assessment {self.assessment_id}")
            return False
        if self.state != AttemptStateEnum.ACTIVE:
            raise AttemptStateError(f"Cannot submit while {self.state.value}")

        unanswered = self.unanswered_question_ids()
        if trigger == SubmitTriggerEnum.MANUAL and unanswered and not self._time_expired:
            if not await self._confirm(unanswered):
                return False
            # The countdown may have submitted while the student was deciding
            if self._closed or self._submission_initiated or self.state != AttemptStateEnum.ACTIVE:
                return False

        self._submission_initiated = True
        self._set_state(AttemptStateEnum.SUBMITTING)
        answers = self.build_submission()

        try:
            result = await self.api.submit_answers(self.attempt.id, answers)
        except ApiError as e:
            if self._closed:
                return False
            logger.error(f"Submission of attempt {self.attempt.id} failed ({trigger.value}): {e}")
            self._submission_initiated = False
            self._set_state(AttemptStateEnum.ACTIVE)
            self._emit(
                NotificationLevelEnum.ERROR,
                "Submission failed",
                f"{e.message}. Your answers are kept; please try submitting again.",
            )
            return False

        if self._closed:
            return False
        self.timer.cancel()
        self.store.clear()
        self.result = result
        self._set_state(AttemptStateEnum.SUBMITTED)
        logger.info(f"Attempt {self.attempt.id} submitted ({trigger.value}) with {len(answers)} answers")
        self._emit(NotificationLevelEnum.SUCCESS, "Assessment submitted", "Your answers have been submitted successfully.")
        return True
