"""Tests for sink error classification."""

import asyncio

import pytest

from core.errors.classifiers import SinkErrorClassifier, classify_error_type
from core.errors.exceptions import DuplicateEventError, SearchIndexError
from core.types import ErrorCategory


# Stand-ins named like driver exceptions; classification goes by type name
class OperationalError(Exception):
    pass


class IntegrityError(Exception):
    pass


class ClientConnectorError(OSError):
    pass


class SubclassedOperationalError(OperationalError):
    pass


@pytest.fixture
def classifier():
    return SinkErrorClassifier()


class TestClassifyErrorType:
    def test_transient_names(self):
        assert classify_error_type("OperationalError") == "transient"
        assert classify_error_type("ServerDisconnectedError") == "transient"

    def test_permanent_names(self):
        assert classify_error_type("IntegrityError") == "permanent"
        assert classify_error_type("UniqueViolationError") == "permanent"

    def test_unknown_name(self):
        assert classify_error_type("SomethingElse") is None


class TestSinkErrorClassifier:
    def test_pipeline_errors_keep_their_category(self, classifier):
        assert classifier.classify_error(DuplicateEventError("e1")) == ErrorCategory.PERMANENT
        assert classifier.classify_error(SearchIndexError("x")) == ErrorCategory.TRANSIENT

    def test_timeouts_are_transient(self, classifier):
        assert classifier.classify_error(asyncio.TimeoutError()) == ErrorCategory.TRANSIENT

    def test_driver_errors_by_name(self, classifier):
        assert classifier.classify_error(OperationalError()) == ErrorCategory.TRANSIENT
        assert classifier.classify_error(IntegrityError()) == ErrorCategory.PERMANENT
        assert classifier.classify_error(ClientConnectorError()) == ErrorCategory.TRANSIENT

    def test_walks_mro(self, classifier):
        assert classifier.classify_error(SubclassedOperationalError()) == ErrorCategory.TRANSIENT

    def test_unknown_errors(self, classifier):
        assert classifier.classify_error(RuntimeError("?")) == ErrorCategory.UNKNOWN

    def test_is_transient(self, classifier):
        assert classifier.is_transient(OperationalError())
        assert not classifier.is_transient(IntegrityError())
