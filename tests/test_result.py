"""Tests for Success/Failure result values."""

import pytest

from hablare.errors import NetworkError
from hablare.result import Failure, Success, is_success


class TestResult:

    def test_success(self):
        result = Success(42)
        assert is_success(result)
        assert result.ok
        assert result.unwrap() == 42

    def test_failure_raises_carried_error(self):
        error = NetworkError("unreachable")
        result = Failure(error)
        assert not is_success(result)
        assert not result.ok
        with pytest.raises(NetworkError) as exc_info:
            result.unwrap()
        assert exc_info.value is error

    def test_frozen(self):
        with pytest.raises(AttributeError):
            Success(1).value = 2
