"""Languages API Router: the editor language catalog."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from src.api.deps import to_http_error
from src.tutor.languages import get_language, lessons_for_language, list_languages

router = APIRouter()


@router.get("", summary="List supported languages")
def languages() -> dict[str, Any]:
    items = list_languages()
    return {"count": len(items), "languages": [language.to_dict() for language in items]}


@router.get("/{language_id}", summary="Get language")
def language(language_id: str) -> dict[str, Any]:
    try:
        found = get_language(language_id)
        return {
            **found.to_dict(),
            "lessons": [lesson.to_dict() for lesson in lessons_for_language(found.id)],
        }
    except Exception as exc:
        raise to_http_error(exc, f"Failed to get language {language_id}")
