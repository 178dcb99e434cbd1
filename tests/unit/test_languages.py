"""
Unit tests for the supported language catalogue.
"""

import pytest

from src.tutor.errors import NotFoundError
from src.tutor.languages import get_language, lessons_for_language, list_languages


class TestLanguages:
    def test_catalogue(self):
        ids = [language.id for language in list_languages()]
        assert ids == ["javascript", "python", "typescript", "java", "csharp", "cpp"]

    def test_lookup_is_case_insensitive(self):
        language = get_language("Python")
        assert language.id == "python"
        assert language.extension == ".py"
        assert 'print("Hello, world!")' in language.default_code

    def test_unknown_language(self):
        with pytest.raises(NotFoundError):
            get_language("cobol")

    def test_not_found_is_lookup_error(self):
        assert issubclass(NotFoundError, LookupError)

    def test_list_is_a_copy(self):
        list_languages().clear()
        assert len(list_languages()) == 6


class TestStarterLessons:
    def test_javascript_lessons(self):
        lessons = lessons_for_language("javascript")
        assert [lesson.level for lesson in lessons] == ["beginner", "intermediate"]

    def test_language_without_lessons(self):
        assert lessons_for_language("cpp") == []

    def test_to_dict(self):
        data = lessons_for_language("PYTHON")[0].to_dict()
        assert data["id"] == "py-basics"
        assert "Use print()" in data["objectives"]
