"""API routers for codetutor."""

from src.api.routers import (
    assessment_router,
    chat_router,
    code_router,
    curriculum_router,
    flow_router,
    languages_router,
    session_router,
)

__all__ = [
    "flow_router",
    "session_router",
    "chat_router",
    "code_router",
    "assessment_router",
    "curriculum_router",
    "languages_router",
]
