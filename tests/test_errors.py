"""Tests for extimpact.utils.errors: typed errors and message extraction."""

from __future__ import annotations

import asyncio

import pytest

from extimpact.utils import errors


class TestGetErrorMessage:
    """Tests for get_error_message()."""

    def test_exception_with_message(self) -> None:
        assert errors.get_error_message(ValueError("bad duration")) == "bad duration"

    def test_empty_message_falls_back_to_class_name(self) -> None:
        assert errors.get_error_message(asyncio.TimeoutError()) == "TimeoutError"

    def test_not_an_exception(self) -> None:
        assert errors.get_error_message("oops") == "Unknown error"


class TestImpactError:
    """Tests for the error taxonomy."""

    @pytest.mark.parametrize("cls", [
        errors.CollectionError,
        errors.DetectionTimeout,
        errors.ElementNotFound,
        errors.TargetUnreachable,
    ])
    def test_subclasses(self, cls: type[errors.ImpactError]) -> None:
        assert issubclass(cls, errors.ImpactError)

    def test_context_includes_set_fields(self) -> None:
        exc = errors.CollectionError("no trace", operation="performance_trace", page_url="https://a/", iteration=0)
        assert exc.context() == {
            "errorType": "CollectionError",
            "operation": "performance_trace",
            "pageUrl": "https://a/",
            "iteration": 0,
        }

    def test_context_omits_unset_fields(self) -> None:
        assert errors.DetectionTimeout("slow").context() == {"errorType": "DetectionTimeout"}

    def test_str_is_message(self) -> None:
        assert str(errors.ElementNotFound("gone")) == "gone"
