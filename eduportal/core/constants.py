from enum import Enum


class RoleEnum(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"

class QuestionTypeEnum(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    FREE_TEXT = "free_text"

class AttemptStatusEnum(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

class AttemptStateEnum(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    REDIRECTED = "redirected"

class SubmitTriggerEnum(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"

class RedirectTargetEnum(str, Enum):
    RESULTS = "results"
    COURSES = "courses"

class NotificationLevelEnum(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

class AIProviderEnum(str, Enum):
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    NONE = "none"

KEYWORD_MIN_LENGTH = 3
KEYWORD_SEPARATORS = r"[\s.,;:!?]+"
KEYWORD_CONFIDENCE = 0.6
