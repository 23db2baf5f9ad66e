from typing import List
from fastapi import APIRouter, Depends, status, Query

from eduportal.crud.database import InMemoryDatabase
from eduportal.schemas.response import APIResponse
from eduportal.utils import deps
from eduportal.schemas.assessment import Assessment, AssessmentCreate
from eduportal.schemas.question import Question, QuestionCreate
from eduportal.schemas.attempt import AssessmentAttempt, AttemptStatus
from eduportal.schemas.answer import AnswerReview, AnswerScoreUpdate, SubmitAnswersRequest
from eduportal.schemas.evaluation import EvaluationRequest, EvaluationResult
from eduportal.schemas.user import UserContext
from eduportal.services.assessment import assessment_service
from eduportal.services.evaluation import ai_evaluation_service

router = APIRouter()


@router.post("/", response_model=APIResponse[Assessment], status_code=status.HTTP_201_CREATED)
async def create_assessment(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_in: AssessmentCreate,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    new_assessment = assessment_service.create_assessment(db, assessment_in=assessment_in, current_user_context=context)
    return APIResponse(message="Assessment created successfully", data=new_assessment)


@router.post("/evaluate-answer", response_model=APIResponse[EvaluationResult])
async def evaluate_answer(
    *,
    evaluation_in: EvaluationRequest,
    context: UserContext = Depends(deps.require_teacher)
):
    result = await ai_evaluation_service.evaluate_answer(evaluation_in)
    return APIResponse(message="Answer evaluated successfully", data=result)


@router.get("/attempts/student", response_model=APIResponse[List[AssessmentAttempt]])
async def get_student_attempts(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempts = assessment_service.get_student_attempts(db, current_user_context=context)
    return APIResponse(message="Attempts retrieved successfully", data=attempts)


@router.post("/attempts/{attempt_id}/submit", response_model=APIResponse[AssessmentAttempt])
async def submit_attempt(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    attempt_id: str,
    submission: SubmitAnswersRequest,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempt = assessment_service.submit_attempt(db, attempt_id=attempt_id, submission=submission, current_user_context=context)
    return APIResponse(message="Assessment submitted successfully", data=attempt)


@router.get("/attempts/{attempt_id}", response_model=APIResponse[AssessmentAttempt])
async def get_attempt(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    attempt_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempt = assessment_service.get_attempt(db, attempt_id=attempt_id, current_user_context=context)
    return APIResponse(message="Attempt retrieved successfully", data=attempt)


@router.get("/attempts/{attempt_id}/answers", response_model=APIResponse[List[AnswerReview]])
async def get_attempt_answers(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    attempt_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    answers = assessment_service.get_attempt_answers(db, attempt_id=attempt_id, current_user_context=context)
    return APIResponse(message="Answers retrieved successfully", data=answers)


@router.put("/answers/{answer_id}/score", response_model=APIResponse[AnswerReview])
async def update_answer_score(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    answer_id: str,
    score_in: AnswerScoreUpdate,
    context: UserContext = Depends(deps.require_teacher)
):
    answer = assessment_service.update_answer_score(db, answer_id=answer_id, score=score_in.score, current_user_context=context)
    return APIResponse(message="Answer score updated successfully", data=answer)


@router.put("/questions/{question_id}", response_model=APIResponse[Question])
async def update_question(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    question_id: str,
    question_in: QuestionCreate,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    question = assessment_service.update_question(db, question_id=question_id, question_in=question_in, current_user_context=context)
    return APIResponse(message="Question updated successfully", data=question)


@router.delete("/questions/{question_id}", response_model=APIResponse[Question])
async def delete_question(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    question_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    deleted_question = assessment_service.delete_question(db, question_id=question_id, current_user_context=context)
    return APIResponse(message="Question deleted successfully", data=deleted_question)


@router.get("/{assessment_id}", response_model=APIResponse[Assessment])
async def get_assessment(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    assessment = assessment_service.get_assessment(db, assessment_id=assessment_id, current_user_context=context)
    return APIResponse(message="Assessment retrieved successfully", data=assessment)


@router.post("/{assessment_id}/questions", response_model=APIResponse[Question], status_code=status.HTTP_201_CREATED)
async def add_question(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    question_in: QuestionCreate,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    question = assessment_service.add_question(db, assessment_id=assessment_id, question_in=question_in, current_user_context=context)
    return APIResponse(message="Question added successfully", data=question)


@router.get("/{assessment_id}/questions", response_model=APIResponse[List[Question]])
async def get_questions(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    include_answers: bool = Query(False),
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    questions = assessment_service.get_questions(
        db, assessment_id=assessment_id, current_user_context=context, include_answers=include_answers
    )
    return APIResponse(message="Questions retrieved successfully", data=questions)


@router.post("/{assessment_id}/publish", response_model=APIResponse[Assessment])
async def publish_assessment(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    assessment = assessment_service.publish_assessment(db, assessment_id=assessment_id, current_user_context=context)
    return APIResponse(message="Assessment published successfully", data=assessment)


@router.post("/{assessment_id}/unpublish", response_model=APIResponse[Assessment])
async def unpublish_assessment(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    assessment = assessment_service.unpublish_assessment(db, assessment_id=assessment_id, current_user_context=context)
    return APIResponse(message="Assessment unpublished successfully", data=assessment)


@router.post("/{assessment_id}/release-results", response_model=APIResponse[Assessment])
async def release_results(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    released: bool = Query(True),
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    assessment = assessment_service.release_results(
        db, assessment_id=assessment_id, current_user_context=context, released=released
    )
    return APIResponse(message="Results release updated successfully", data=assessment)


@router.get("/{assessment_id}/attempt-status", response_model=APIResponse[AttemptStatus])
async def get_attempt_status(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempt_status = assessment_service.get_attempt_status(db, assessment_id=assessment_id, current_user_context=context)
    return APIResponse(message="Attempt status retrieved successfully", data=attempt_status)


@router.post("/{assessment_id}/start", response_model=APIResponse[AssessmentAttempt], status_code=status.HTTP_201_CREATED)
async def start_attempt(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempt = assessment_service.start_attempt(db, assessment_id=assessment_id, current_user_context=context)
    return APIResponse(message="Attempt started successfully", data=attempt)


@router.get("/{assessment_id}/attempts", response_model=APIResponse[List[AssessmentAttempt]])
async def get_assessment_attempts(
    *,
    db: InMemoryDatabase = Depends(deps.get_db),
    assessment_id: str,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempts = assessment_service.get_assessment_attempts(db, assessment_id=assessment_id, current_user_context=context)
    return APIResponse(message="Attempts retrieved successfully", data=attempts)
