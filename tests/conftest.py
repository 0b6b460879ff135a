"""Shared fixtures."""

from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture
def package_body() -> dict[str, Any]:
    """A synthesized context package as the model returns it, unstamped."""
    return {
        "task": {
            "description": "Add cursor pagination to the users endpoint",
            "acceptanceCriteria": ["GET /users accepts a cursor", "Existing tests pass"],
            "scope": {"inScope": ["users API"], "outOfScope": ["admin API"]},
        },
        "architecture": {
            "overview": "FastAPI app with a service layer",
            "relevantComponents": [
                {"name": "UserService", "purpose": "User queries", "location": "src/services"}
            ],
            "dependencies": ["fastapi", "sqlalchemy"],
        },
        "codeContext": {
            "mustRead": [{"path": "src/api/users.py", "reason": "Endpoint to change"}],
            "mustNotModify": [{"path": "migrations/", "reason": "Applied migrations"}],
            "relatedExamples": [{"path": "src/api/orders.py", "similarity": "Already paginated"}],
        },
        "patterns": {
            "namingConventions": "snake_case",
            "fileOrganization": "feature folders",
            "testingApproach": "pytest with fixtures",
            "errorHandling": "HTTPException from services",
            "codeStyle": ["ruff", "type hints everywhere"],
        },
        "constraints": {
            "technical": ["Python 3.11"],
            "quality": ["80% coverage"],
            "timeline": None,
        },
        "risks": [{"description": "Cursor leaks ids", "mitigation": "Encode cursors"}],
        "history": {
            "previousAttempts": [],
            "relatedDecisions": [
                {"decision": "Use keyset pagination", "rationale": "Stable under inserts"}
            ],
        },
        "humanSync": {"requiredBefore": [], "ambiguities": ["Default page size?"]},
    }
