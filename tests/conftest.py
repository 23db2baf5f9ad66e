import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import uuid
import httpx
import pytest
from fastapi.testclient import TestClient

import main
from eduportal.clients.assessment_api import AssessmentApiClient
from eduportal.clients.credentials import StaticCredentials
from eduportal.core.constants import RoleEnum
from eduportal.core.security import create_access_token
from eduportal.crud.database import database
from eduportal.schemas.user import UserContext

@pytest.fixture(scope="function")
def db():
    database.reset()
    yield database
    database.reset()

@pytest.fixture(scope="function")
def client(db):
    with TestClient(main.app) as test_client:
        yield test_client

@pytest.fixture
def teacher():
    return UserContext(user_id=f"teacher-{uuid.uuid4().hex[:8]}", role=RoleEnum.TEACHER)

@pytest.fixture
def student():
    return UserContext(user_id=f"student-{uuid.uuid4().hex[:8]}", role=RoleEnum.STUDENT)

@pytest.fixture
def token_for(db):
    """Bearer token for a user context."""
    def _create_token(context: UserContext) -> str:
        return create_access_token(context.user_id, context.role)
    return _create_token

@pytest.fixture
def token_for_role(db):
    """Create tokens for different roles, one fresh user per role."""
    tokens = {}

    def _create_token_for_role(role_name: str) -> str:
        if role_name not in tokens:
            role = getattr(RoleEnum, role_name.upper())
            tokens[role_name] = create_access_token(f"{role_name}-{uuid.uuid4().hex[:8]}", role)
        return tokens[role_name]
    return _create_token_for_role

@pytest.fixture
def api_client_for(db, token_for):
    """Assessment API client wired to the in-process app.

    Use as ``async with api_client_for(context) as api``.
    """
    def _make_client(context: UserContext, credentials=None) -> AssessmentApiClient:
        return AssessmentApiClient(
            base_url="http://test",
            credentials=credentials or StaticCredentials(token_for(context)),
            transport=httpx.ASGITransport(app=main.app),
        )
    return _make_client
