"""Free-text answer evaluation: LLM-backed suggestions with a keyword fallback."""
import json
import logging
import math
import re
from typing import List, Optional

import httpx

from eduportal.core.config import settings
from eduportal.core.constants import (
    AIProviderEnum,
    KEYWORD_CONFIDENCE,
    KEYWORD_MIN_LENGTH,
    KEYWORD_SEPARATORS,
)
from eduportal.schemas.evaluation import EvaluationRequest, EvaluationResult

logger = logging.getLogger(__name__)

EVALUATION_PROMPT = """You are an educational assessment assistant. Evaluate the student's answer fairly and provide constructive feedback.

QUESTION:
{question}

EXPECTED ANSWER (Reference):
{expected_answer}

STUDENT'S ANSWER:
{student_answer}

EVALUATION CRITERIA:
1. Correctness: Does the answer contain accurate information?
2. Completeness: Does it cover the main points?
3. Clarity: Is it well-explained?
4. Understanding: Does it demonstrate conceptual understanding?

SCORING:
Maximum Points: {max_points}
- Award full points if the answer is accurate, complete, and well-explained
- Deduct points for missing key concepts, inaccuracies, or unclear explanations
- Give partial credit for partially correct answers

RESPONSE FORMAT (you must respond with ONLY valid JSON, no other text):
{{
    "score": <number between 0 and {max_points}>,
    "feedback": "<brief constructive feedback explaining the score>",
    "confidence": <decimal between 0 and 1 indicating confidence>
}}

Respond with ONLY the JSON object, nothing else."""


def _tokenize(text: str) -> List[str]:
    return [token for token in re.split(KEYWORD_SEPARATORS, text.lower()) if token]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _keyword_feedback(ratio: float) -> str:
    if ratio >= 0.9:
        return "Excellent answer covering most key concepts."
    if ratio >= 0.7:
        return "Good answer, but some key points could be expanded."
    if ratio >= 0.5:
        return "Partial answer. Missing some important concepts."
    if ratio >= 0.3:
        return "Limited answer. Please include more key concepts."
    return "Answer needs significant improvement. Review the material."


def keyword_match_evaluation(
    expected_answer: Optional[str], student_answer: Optional[str], max_points: int
) -> EvaluationResult:
    """Score a free-text answer by keyword overlap with the model answer.

    Qualifying words are the distinct model-answer tokens longer than three
    characters. A qualifying word counts as matched when any student token
    contains it or is contained in it. Points scale linearly with the share of
    matched words, rounded half up and clamped to ``[0, max_points]``.
    """
    if not (student_answer or "").strip() or not (expected_answer or "").strip():
        return EvaluationResult(suggested_score=0, feedback="Answer is empty or missing.", confidence=1.0)

    expected_words = list(dict.fromkeys(
        word for word in _tokenize(expected_answer) if len(word) > KEYWORD_MIN_LENGTH
    ))
    student_words = _tokenize(student_answer)

    match_count = sum(
        1 for word in expected_words
        if any(word in student_word or student_word in word for student_word in student_words)
    )
    ratio = match_count / len(expected_words) if expected_words else 0.0
    score = min(max(round_half_up(ratio * max_points), 0), max_points)

    return EvaluationResult(
        suggested_score=score,
        feedback=_keyword_feedback(ratio),
        confidence=KEYWORD_CONFIDENCE,
    )


def build_evaluation_prompt(request: EvaluationRequest) -> str:
    return EVALUATION_PROMPT.format(
        question=request.question,
        expected_answer=request.expected_answer or "(no reference answer provided)",
        student_answer=request.student_answer,
        max_points=request.max_points,
    )


def parse_ai_response(response: str, max_points: int) -> EvaluationResult:
    """Parse the model's JSON verdict. Raises ValueError on malformed output."""
    clean = response.strip()
    if clean.startswith("```json"):
        clean = clean[7:]
    elif clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    clean = clean.strip()

    try:
        result = json.loads(clean)
    except json.JSONDecodeError as e:
        raise ValueError(f"AI response is not valid JSON: {e}") from e

    if not isinstance(result, dict) or "score" not in result:
        raise ValueError("AI response missing 'score' field")

    score = round_half_up(float(result["score"]))
    feedback = result.get("feedback") or "No feedback provided"
    confidence = float(result.get("confidence", 0.8))

    return EvaluationResult(
        suggested_score=max(0, min(max_points, score)),
        feedback=str(feedback),
        confidence=max(0.0, min(1.0, confidence)),
    )


class AiEvaluationService:
    def __init__(self, provider: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.provider = AIProviderEnum(provider or settings.AI_PROVIDER)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        if self.provider == AIProviderEnum.OPENROUTER:
            return bool(settings.OPENROUTER_API_KEY)
        return self.provider == AIProviderEnum.OLLAMA

    async def evaluate_answer(self, request: EvaluationRequest) -> EvaluationResult:
        if not self.is_configured:
            logger.info("AI provider not configured, using keyword matching")
            return keyword_match_evaluation(request.expected_answer, request.student_answer, request.max_points)

        try:
            raw = await self._complete(build_evaluation_prompt(request))
            result = parse_ai_response(raw, request.max_points)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"AI evaluation via {self.provider.value} failed, falling back to keyword matching: {e}")
            return keyword_match_evaluation(request.expected_answer, request.student_answer, request.max_points)

        logger.info(f"AI evaluation complete: {result.suggested_score}/{request.max_points} (confidence {result.confidence})")
        return result

    async def _complete(self, prompt: str) -> str:
        async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS, transport=self._transport) as client:
            if self.provider == AIProviderEnum.OLLAMA:
                response = await client.post(
                    f"{settings.OLLAMA_URL}/api/generate",
                    json={
                        "model": settings.OLLAMA_MODEL,
                        "prompt": prompt,
                        "stream": False,
                        "options": {"temperature": settings.LLM_TEMPERATURE, "num_predict": 300},
                    },
                )
                response.raise_for_status()
                text = response.json().get("response")
                if not text:
                    raise ValueError("Empty response from Ollama")
                return text

            response = await client.post(
                f"{settings.OPENROUTER_API_URL}/chat/completions",
                headers={"Authorization": f"Bearer {settings.OPENROUTER_API_KEY}"},
                json={
                    "model": settings.OPENROUTER_MODEL,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": settings.LLM_TEMPERATURE,
                    "max_tokens": 500,
                },
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]


ai_evaluation_service = AiEvaluationService()
