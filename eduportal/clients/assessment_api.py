"""Authenticated async client for the Assessment API.

Responses arrive wrapped as ``{"message": ..., "data": ...}``; every operation
unwraps ``data`` and validates it into the shared pydantic schemas, so callers
never touch raw JSON.
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from eduportal.clients.credentials import CredentialsProvider
from eduportal.core.config import settings
from eduportal.core.exceptions import ApiError, UnauthorizedError
from eduportal.schemas.answer import AnswerReview, AnswerScoreUpdate, SubmitAnswer, SubmitAnswersRequest
from eduportal.schemas.assessment import Assessment, AssessmentCreate
from eduportal.schemas.attempt import AssessmentAttempt, AttemptStatus
from eduportal.schemas.evaluation import EvaluationRequest, EvaluationResult
from eduportal.schemas.question import Question, QuestionCreate

logger = logging.getLogger(__name__)

_question = TypeAdapter(Question)
_questions = TypeAdapter(List[Question])
_attempts = TypeAdapter(List[AssessmentAttempt])
_answer_reviews = TypeAdapter(List[AnswerReview])


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if body.get("detail"):
            return str(body["detail"])
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase


class AssessmentApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        credentials: Optional[CredentialsProvider] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "AssessmentApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        token = self.credentials.get_token() if self.credentials else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _make_request(
        self, method: str, path: str, json: Any = None, params: Optional[dict] = None
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=self._headers())
        except httpx.RequestError as e:
            logger.error(f"{method} {path} failed before a response arrived: {e}")
            raise ApiError(f"Network error: {e}") from e

        if response.status_code == 401:
            logger.warning(f"{method} {path} rejected with 401; session is no longer valid")
            if self.credentials:
                self.credentials.on_unauthorized()
            raise UnauthorizedError(_error_message(response))

        if response.is_error:
            message = _error_message(response)
            logger.warning(f"{method} {path} => {response.status_code}: {message}")
            raise ApiError(message, status_code=response.status_code)

        try:
            return response.json().get("data")
        except (ValueError, AttributeError) as e:
            raise ApiError("Malformed response body", status_code=response.status_code) from e

    async def _request_model(self, adapter, method: str, path: str, **kwargs) -> Any:
        data = await self._make_request(method, path, **kwargs)
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            raise ApiError(f"Unexpected response shape from {path}: {e.error_count()} error(s)") from e

    # Student attempt flow

    async def get_attempt_status(self, assessment_id: str) -> AttemptStatus:
        return await self._request_model(TypeAdapter(AttemptStatus), "GET", f"/assessments/{assessment_id}/attempt-status")

    async def get_assessment(self, assessment_id: str) -> Assessment:
        return await self._request_model(TypeAdapter(Assessment), "GET", f"/assessments/{assessment_id}")

    async def get_questions(self, assessment_id: str, include_answers: bool = False) -> List[Question]:
        params = {"include_answers": "true"} if include_answers else None
        return await self._request_model(_questions, "GET", f"/assessments/{assessment_id}/questions", params=params)

    async def start_attempt(self, assessment_id: str) -> AssessmentAttempt:
        return await self._request_model(TypeAdapter(AssessmentAttempt), "POST", f"/assessments/{assessment_id}/start")

    async def submit_answers(self, attempt_id: str, answers: List[SubmitAnswer]) -> AssessmentAttempt:
        payload = SubmitAnswersRequest(answers=answers).model_dump(mode="json")
        return await self._request_model(
            TypeAdapter(AssessmentAttempt), "POST", f"/assessments/attempts/{attempt_id}/submit", json=payload
        )

    async def get_attempt(self, attempt_id: str) -> AssessmentAttempt:
        return await self._request_model(TypeAdapter(AssessmentAttempt), "GET", f"/assessments/attempts/{attempt_id}")

    async def get_attempt_answers(self, attempt_id: str) -> List[AnswerReview]:
        return await self._request_model(_answer_reviews, "GET", f"/assessments/attempts/{attempt_id}/answers")

    async def get_student_attempts(self) -> List[AssessmentAttempt]:
        return await self._request_model(_attempts, "GET", "/assessments/attempts/student")

    # Teacher review flow

    async def get_assessment_attempts(self, assessment_id: str) -> List[AssessmentAttempt]:
        return await self._request_model(_attempts, "GET", f"/assessments/{assessment_id}/attempts")

    async def evaluate_answer(self, request: EvaluationRequest) -> EvaluationResult:
        return await self._request_model(
            TypeAdapter(EvaluationResult), "POST", "/assessments/evaluate-answer", json=request.model_dump(mode="json")
        )

    async def update_answer_score(self, answer_id: str, score: float) -> AnswerReview:
        payload = AnswerScoreUpdate(score=score).model_dump(mode="json")
        return await self._request_model(
            TypeAdapter(AnswerReview), "PUT", f"/assessments/answers/{answer_id}/score", json=payload
        )

    # Authoring

    async def create_assessment(self, assessment_in: AssessmentCreate) -> Assessment:
        return await self._request_model(
            TypeAdapter(Assessment), "POST", "/assessments/", json=assessment_in.model_dump(mode="json")
        )

    async def add_question(self, assessment_id: str, question_in: QuestionCreate) -> Question:
        return await self._request_model(
            _question, "POST", f"/assessments/{assessment_id}/questions", json=question_in.model_dump(mode="json")
        )

    async def update_question(self, question_id: str, question_in: QuestionCreate) -> Question:
        return await self._request_model(
            _question, "PUT", f"/assessments/questions/{question_id}", json=question_in.model_dump(mode="json")
        )

    async def delete_question(self, question_id: str) -> Question:
        return await self._request_model(_question, "DELETE", f"/assessments/questions/{question_id}")

    async def publish_assessment(self, assessment_id: str) -> Assessment:
        return await self._request_model(TypeAdapter(Assessment), "POST", f"/assessments/{assessment_id}/publish")

    async def unpublish_assessment(self, assessment_id: str) -> Assessment:
        return await self._request_model(TypeAdapter(Assessment), "POST", f"/assessments/{assessment_id}/unpublish")

    async def release_results(self, assessment_id: str, released: bool = True) -> Assessment:
        return await self._request_model(
            TypeAdapter(Assessment), "POST", f"/assessments/{assessment_id}/release-results",
            params={"released": "true" if released else "false"},
        )
