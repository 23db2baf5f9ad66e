import logging
from typing import List

from fastapi import HTTPException, status

from eduportal.core.constants import AttemptStatusEnum, QuestionTypeEnum
from eduportal.crud.answer import answer as crud_answer
from eduportal.crud.assessment import assessment as crud_assessment
from eduportal.crud.attempt import attempt as crud_attempt
from eduportal.crud.database import InMemoryDatabase
from eduportal.crud.question import question as crud_question
from eduportal.models.answer import Answer as AnswerModel
from eduportal.models.assessment import Assessment as AssessmentModel
from eduportal.models.attempt import AssessmentAttempt as AttemptModel
from eduportal.models.base import utcnow
from eduportal.models.question import Question as QuestionModel, QuestionOption as QuestionOptionModel
from eduportal.schemas.answer import AnswerReview, SubmitAnswersRequest
from eduportal.schemas.assessment import Assessment, AssessmentCreate
from eduportal.schemas.attempt import AssessmentAttempt, AttemptStatus
from eduportal.schemas.question import FreeTextQuestion, MultipleChoiceQuestion, QuestionCreate, QuestionOption
from eduportal.schemas.user import UserContext

logger = logging.getLogger(__name__)


class AssessmentService:

    def _get_assessment_or_404(self, db: InMemoryDatabase, assessment_id: str) -> AssessmentModel:
        assessment = crud_assessment.get(db, id=assessment_id)
        if not assessment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assessment not found.")
        return assessment

    def _get_attempt_or_404(self, db: InMemoryDatabase, attempt_id: str) -> AttemptModel:
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        return attempt

    def _require_teacher(self, context: UserContext):
        if not context.is_teacher:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only teachers can perform this action.")

    def _require_student(self, context: UserContext):
        if not context.is_student:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only students can attempt assessments.")

    def _require_owner(self, context: UserContext, assessment: AssessmentModel):
        self._require_teacher(context)
        if assessment.teacher_id != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only manage assessments you created."
            )

    def _require_attempt_view_permission(
        self, context: UserContext, attempt: AttemptModel, assessment: AssessmentModel
    ):
        if attempt.student_id == context.user_id:
            return
        if context.is_teacher and assessment.teacher_id == context.user_id:
            return
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view this attempt.")

    def _results_hidden(self, context: UserContext, assessment: AssessmentModel) -> bool:
        return context.is_student and not assessment.results_released

    def _to_assessment(self, db: InMemoryDatabase, assessment: AssessmentModel) -> Assessment:
        questions = crud_question.get_by_assessment(db, assessment.id)
        return Assessment(
            **assessment.model_dump(),
            question_count=len(questions),
            total_points=sum(q.points for q in questions),
        )

    def _to_question(self, question: QuestionModel, include_answers: bool):
        base = dict(
            id=question.id,
            assessment_id=question.assessment_id,
            text=question.text,
            points=question.points,
            order=question.order,
        )
        if question.question_type == QuestionTypeEnum.MULTIPLE_CHOICE:
            options = [
                QuestionOption(
                    id=o.id,
                    text=o.text,
                    order=o.order,
                    is_correct=o.is_correct if include_answers else None,
                )
                for o in sorted(question.options, key=lambda o: o.order)
            ]
            return MultipleChoiceQuestion(**base, options=options)
        return FreeTextQuestion(**base, expected_answer=question.expected_answer if include_answers else None)

    def _to_attempt(self, attempt: AttemptModel, assessment: AssessmentModel, hide_results: bool) -> AssessmentAttempt:
        return AssessmentAttempt(
            id=attempt.id,
            assessment_id=attempt.assessment_id,
            assessment_title=assessment.title,
            student_id=attempt.student_id,
            status=attempt.status,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            score=None if hide_results else attempt.score,
            max_score=None if hide_results else attempt.max_score,
            results_released=assessment.results_released,
        )

    def _to_answer_review(self, answer: AnswerModel, question: QuestionModel, hide_results: bool) -> AnswerReview:
        selected = question.option(answer.selected_option_id)
        correct = question.correct_option
        options = [
            QuestionOption(id=o.id, text=o.text, order=o.order, is_correct=None if hide_results else o.is_correct)
            for o in sorted(question.options, key=lambda o: o.order)
        ]
        review = AnswerReview(
            id=answer.id,
            attempt_id=answer.attempt_id,
            question_id=question.id,
            question_text=question.text,
            question_type=question.question_type,
            question_points=question.points,
            question_options=options,
            selected_option_id=answer.selected_option_id,
            selected_option_text=selected.text if selected else None,
            text_answer=answer.text_answer,
        )
        if hide_results:
            return review
        review.points_earned = answer.points_earned
        review.is_correct = answer.is_correct
        review.correct_option_id = correct.id if correct else None
        review.correct_answer = correct.text if correct else None
        review.expected_answer = question.expected_answer
        return review

    def create_assessment(self, db: InMemoryDatabase, assessment_in: AssessmentCreate, current_user_context: UserContext) -> Assessment:
        self._require_teacher(current_user_context)
        new_assessment = crud_assessment.create(
            db, obj_in={**assessment_in.model_dump(), "teacher_id": current_user_context.user_id}
        )
        logger.info(f"Assessment {new_assessment.id} created by {current_user_context.user_id}")
        return self._to_assessment(db, new_assessment)

    def get_assessment(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext) -> Assessment:
        assessment = self._get_assessment_or_404(db, assessment_id)
        if current_user_context.is_student and not assessment.is_published:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assessment not found.")
        return self._to_assessment(db, assessment)

    def _require_questions_editable(self, db: InMemoryDatabase, assessment: AssessmentModel):
        if assessment.is_published:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Questions cannot be changed once the assessment is published."
            )
        if crud_attempt.count_by_assessment(db, assessment.id) > 0:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Questions cannot be changed once the assessment has been attempted."
            )

    def _get_editable_question(self, db: InMemoryDatabase, question_id: str,
                               current_user_context: UserContext) -> QuestionModel:
        question = crud_question.get(db, id=question_id)
        if not question:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Question not found.")
        assessment = self._get_assessment_or_404(db, question.assessment_id)
        self._require_owner(current_user_context, assessment)
        self._require_questions_editable(db, assessment)
        return question

    def _question_fields(self, question_in: QuestionCreate) -> dict:
        is_mcq = question_in.question_type == QuestionTypeEnum.MULTIPLE_CHOICE
        return {
            "question_type": question_in.question_type,
            "text": question_in.text,
            "points": question_in.points,
            "expected_answer": None if is_mcq else question_in.expected_answer,
            "options": [
                QuestionOptionModel(text=o.text, is_correct=o.is_correct, order=i + 1)
                for i, o in enumerate(question_in.options)
            ],
        }

    def add_question(self, db: InMemoryDatabase, assessment_id: str, question_in: QuestionCreate,
                     current_user_context: UserContext):
        assessment = self._get_assessment_or_404(db, assessment_id)
        self._require_owner(current_user_context, assessment)

        with db.lock:
            self._require_questions_editable(db, assessment)
            new_question = crud_question.create(db, obj_in={
                **self._question_fields(question_in),
                "assessment_id": assessment_id,
                "order": crud_question.next_order(db, assessment_id),
            })
        return self._to_question(new_question, include_answers=True)

    def update_question(self, db: InMemoryDatabase, question_id: str, question_in: QuestionCreate,
                        current_user_context: UserContext):
        """Replace a draft question's text, type, points and options. Its position is kept."""
        with db.lock:
            question = self._get_editable_question(db, question_id, current_user_context)
            crud_question.update(db, db_obj=question, obj_in=self._question_fields(question_in))
        logger.info(f"Question {question_id} updated by {current_user_context.user_id}")
        return self._to_question(question, include_answers=True)

    def delete_question(self, db: InMemoryDatabase, question_id: str, current_user_context: UserContext):
        with db.lock:
            question = self._get_editable_question(db, question_id, current_user_context)
            crud_question.delete(db, id=question_id)
        logger.info(f"Question {question_id} deleted by {current_user_context.user_id}")
        return self._to_question(question, include_answers=True)

    def get_questions(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext,
                      include_answers: bool = False) -> list:
        assessment = self._get_assessment_or_404(db, assessment_id)
        if current_user_context.is_student and not assessment.is_published:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assessment not found.")

        reveal = include_answers and current_user_context.is_teacher and assessment.teacher_id == current_user_context.user_id
        return [self._to_question(q, include_answers=reveal) for q in crud_question.get_by_assessment(db, assessment_id)]

    def publish_assessment(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext) -> Assessment:
        assessment = self._get_assessment_or_404(db, assessment_id)
        self._require_owner(current_user_context, assessment)
        if not crud_question.get_by_assessment(db, assessment_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An assessment needs at least one question before it can be published."
            )
        crud_assessment.update(db, db_obj=assessment, obj_in={"is_published": True})
        return self._to_assessment(db, assessment)

    def unpublish_assessment(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext) -> Assessment:
        assessment = self._get_assessment_or_404(db, assessment_id)
        self._require_owner(current_user_context, assessment)
        crud_assessment.update(db, db_obj=assessment, obj_in={"is_published": False})
        return self._to_assessment(db, assessment)

    def release_results(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext,
                        released: bool = True) -> Assessment:
        assessment = self._get_assessment_or_404(db, assessment_id)
        self._require_owner(current_user_context, assessment)
        crud_assessment.update(db, db_obj=assessment, obj_in={"results_released": released})
        return self._to_assessment(db, assessment)

    def get_attempt_status(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext) -> AttemptStatus:
        assessment = self._get_assessment_or_404(db, assessment_id)
        attempt = crud_attempt.get_by_student_and_assessment(db, current_user_context.user_id, assessment_id)
        if not attempt:
            return AttemptStatus(has_attempted=False)
        hide = self._results_hidden(current_user_context, assessment)
        return AttemptStatus(has_attempted=True, attempt=self._to_attempt(attempt, assessment, hide))

    def start_attempt(self, db: InMemoryDatabase, assessment_id: str, current_user_context: UserContext) -> AssessmentAttempt:
        self._require_student(current_user_context)
        assessment = self._get_assessment_or_404(db, assessment_id)
        if not assessment.is_published:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assessment is not published.")

        with db.lock:
            existing = crud_attempt.get_by_student_and_assessment(db, current_user_context.user_id, assessment_id)
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="You have already attempted this assessment."
                )
            new_attempt = crud_attempt.create(db, obj_in={
                "assessment_id": assessment_id,
                "student_id": current_user_context.user_id,
                "max_score": sum(q.points for q in crud_question.get_by_assessment(db, assessment_id)),
            })

        logger.info(f"Attempt {new_attempt.id} started by {current_user_context.user_id} on {assessment_id}")
        return self._to_attempt(new_attempt, assessment, hide_results=self._results_hidden(current_user_context, assessment))

    def submit_attempt(self, db: InMemoryDatabase, attempt_id: str, submission: SubmitAnswersRequest,
                       current_user_context: UserContext) -> AssessmentAttempt:
        attempt = self._get_attempt_or_404(db, attempt_id)
        if attempt.student_id != current_user_context.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only submit your own attempts.")

        assessment = self._get_assessment_or_404(db, attempt.assessment_id)
        questions = {q.id: q for q in crud_question.get_by_assessment(db, attempt.assessment_id)}

        question_ids = [a.question_id for a in submission.answers]
        if len(question_ids) != len(set(question_ids)):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Duplicate question_ids found in submission.")
        invalid = [qid for qid in question_ids if qid not in questions]
        if invalid:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid question_id(s): {invalid}. All questions must belong to the assessment."
            )

        with db.lock:
            if attempt.status != AttemptStatusEnum.IN_PROGRESS:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This attempt has already been submitted.")

            submitted = {a.question_id: a for a in submission.answers}
            total_score = 0.0
            max_score = 0
            for question in questions.values():
                max_score += question.points
                answer_in = submitted.get(question.id)
                if question.question_type == QuestionTypeEnum.MULTIPLE_CHOICE:
                    selected_option_id = answer_in.selected_option_id if answer_in else None
                    correct = question.correct_option
                    is_correct = selected_option_id is not None and correct is not None and correct.id == selected_option_id
                    points = question.points if is_correct else 0
                    crud_answer.create(db, obj_in={
                        "attempt_id": attempt.id,
                        "question_id": question.id,
                        "question_type": question.question_type,
                        "selected_option_id": selected_option_id,
                        "is_correct": is_correct,
                        "points_earned": points,
                    })
                    total_score += points
                else:
                    crud_answer.create(db, obj_in={
                        "attempt_id": attempt.id,
                        "question_id": question.id,
                        "question_type": question.question_type,
                        "text_answer": answer_in.text_answer if answer_in else None,
                        "is_correct": False,
                        "points_earned": 0,
                    })

            crud_attempt.update(db, db_obj=attempt, obj_in={
                "status": AttemptStatusEnum.COMPLETED,
                "completed_at": utcnow(),
                "score": total_score,
                "max_score": max_score,
            })

        logger.info(f"Attempt {attempt.id} submitted: {total_score}/{max_score}")
        return self._to_attempt(attempt, assessment, hide_results=self._results_hidden(current_user_context, assessment))

    def get_attempt(self, db: InMemoryDatabase, attempt_id: str, current_user_context: UserContext) -> AssessmentAttempt:
        attempt = self._get_attempt_or_404(db, attempt_id)
        assessment = self._get_assessment_or_404(db, attempt.assessment_id)
        self._require_attempt_view_permission(current_user_context, attempt, assessment)
        return self._to_attempt(attempt, assessment, hide_results=self._results_hidden(current_user_context, assessment))

    def get_attempt_answers(self, db: InMemoryDatabase, attempt_id: str, current_user_context: UserContext) -> List[AnswerReview]:
        attempt = self._get_attempt_or_404(db, attempt_id)
        assessment = self._get_assessment_or_404(db, attempt.assessment_id)
        self._require_attempt_view_permission(current_user_context, attempt, assessment)

        hide = self._results_hidden(current_user_context, assessment)
        questions = {q.id: q for q in crud_question.get_by_assessment(db, attempt.assessment_id)}
        answers = sorted(
            (a for a in crud_answer.get_all_by_attempt(db, attempt_id) if a.question_id in questions),
            key=lambda a: questions[a.question_id].order,
        )
        return [self._to_answer_review(a, questions[a.question_id], hide) for a in answers]

    def get_assessment_attempts(self, db: InMemoryDatabase, assessment_id: str,
                                current_user_context: UserContext) -> List[AssessmentAttempt]:
        assessment = self._get_assessment_or_404(db, assessment_id)
        self._require_owner(current_user_context, assessment)
        return [
            self._to_attempt(a, assessment, hide_results=False)
            for a in crud_attempt.get_all_by_assessment(db, assessment_id)
        ]

    def get_student_attempts(self, db: InMemoryDatabase, current_user_context: UserContext) -> List[AssessmentAttempt]:
        self._require_student(current_user_context)
        attempts = []
        for attempt in crud_attempt.get_all_by_student(db, current_user_context.user_id):
            assessment = crud_assessment.get(db, id=attempt.assessment_id)
            if not assessment:
                continue
            attempts.append(self._to_attempt(attempt, assessment, self._results_hidden(current_user_context, assessment)))
        return attempts

    def update_answer_score(self, db: InMemoryDatabase, answer_id: str, score: float,
                            current_user_context: UserContext) -> AnswerReview:
        answer = crud_answer.get(db, id=answer_id)
        if not answer:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Answer not found.")
        attempt = self._get_attempt_or_404(db, answer.attempt_id)
        assessment = self._get_assessment_or_404(db, attempt.assessment_id)
        self._require_owner(current_user_context, assessment)

        question = crud_question.get(db, id=answer.question_id)
        if not question:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Question not found.")
        if question.question_type != QuestionTypeEnum.FREE_TEXT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Multiple-choice answers are scored automatically."
            )

        points = max(0.0, min(float(question.points), score))
        with db.lock:
            crud_answer.update(db, db_obj=answer, obj_in={
                "points_earned": points,
                "is_correct": points >= question.points,
            })
            total = sum(a.points_earned for a in crud_answer.get_all_by_attempt(db, attempt.id))
            crud_attempt.update(db, db_obj=attempt, obj_in={"score": total})

        logger.info(f"Answer {answer_id} scored {points}/{question.points}; attempt {attempt.id} total {total}")
        return self._to_answer_review(answer, question, hide_results=False)


assessment_service = AssessmentService()
