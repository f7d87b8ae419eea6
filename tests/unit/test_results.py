"""Unit tests for typed API results."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from qbo_client.exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
)
from qbo_client.models.results import ErrorResult, SuccessResult, parse_retry_after


def _fault(*errors):
    return {"Fault": {"Error": list(errors), "type": "ValidationFault"}}


class TestSuccessResult:
    """Entity and pagination helpers."""

    def test_query_entity_and_metadata(self):
        result = SuccessResult(
            status_code=200,
            data={
                "QueryResponse": {
                    "Customer": [{"Id": "1"}, {"Id": "2"}],
                    "startPosition": 1,
                    "maxResults": 2,
                    "totalCount": 2,
                },
                "time": "2024-01-01T00:00:00Z",
            },
        )
        assert result.success and not result.error
        assert result.entity == [{"Id": "1"}, {"Id": "2"}]
        assert result.metadata == {
            "start_position": 1,
            "max_results": 2,
            "total_count": 2,
        }

    def test_single_entity(self):
        result = SuccessResult(
            status_code=200,
            data={"time": "2024-01-01T00:00:00Z", "Customer": {"Id": "7"}},
        )
        assert result.entity == {"Id": "7"}
        assert result.metadata == {}
        assert result.has_more is False

    @pytest.mark.parametrize(
        "start, max_results, total, expected",
        [(6, 10, 20, True), (0, 100, 50, False), (1, 10, 11, False)],
    )
    def test_has_more(self, start, max_results, total, expected):
        result = SuccessResult(
            status_code=200,
            data={
                "QueryResponse": {
                    "startPosition": start,
                    "maxResults": max_results,
                    "totalCount": total,
                }
            },
        )
        assert result.has_more is expected

    def test_has_more_with_missing_count(self):
        result = SuccessResult(
            status_code=200,
            data={"QueryResponse": {"startPosition": 1, "maxResults": 10}},
        )
        assert result.has_more is False

    @pytest.mark.parametrize(
        "start, max_results, total, expected",
        [
            ("6", "10", "20", True),
            ("1", "10", "abc", False),
            ("n/a", "10", "20", True),
            ("1", "", "5", True),
            ("12abc", 10, "25", True),
            (1.0, 10.0, 20.0, True),
        ],
    )
    def test_has_more_coerces_metadata(self, start, max_results, total, expected):
        result = SuccessResult(
            status_code=200,
            data={
                "QueryResponse": {
                    "startPosition": start,
                    "maxResults": max_results,
                    "totalCount": total,
                }
            },
        )
        assert result.has_more is expected



class TestErrorResultFaults:
    """Fault envelope parsing."""

    def test_fault_entries(self):
        result = ErrorResult(
            status_code=400,
            data=_fault(
                {
                    "Message": "Duplicate Name Exists Error",
                    "Detail": "The name supplied already exists.",
                    "code": "6240",
                    "element": "DisplayName",
                },
                {"message": "Other", "code": "2020"},
            ),
        )
        errors = result.errors
        assert len(errors) == 2
        assert errors[0].code == "6240"
        assert errors[0].detail == "The name supplied already exists."
        assert errors[0].element == "DisplayName"
        assert errors[1].message == "Other"
        assert result.error_codes == ["6240", "2020"]
        assert result.error_message == "6240: Duplicate Name Exists Error; 2020: Other"

    def test_single_error_dict(self):
        result = ErrorResult(
            status_code=400, data={"Fault": {"Error": {"code": "1", "Message": "m"}}}
        )
        assert result.error_codes == ["1"]

    def test_missing_fields_get_defaults(self):
        result = ErrorResult(status_code=400, data=_fault({}))
        assert result.errors[0].code == "UNKNOWN"
        assert result.errors[0].message == "Unknown error"

    def test_synthesized_error_without_envelope(self):
        result = ErrorResult(status_code=502, data={"message": "bad gateway"})
        assert result.errors[0].code == "502"
        assert result.errors[0].message == "HTTP Error 502"
        assert result.errors[0].detail == "bad gateway"
        assert result.error_message == "502: HTTP Error 502"


class TestErrorResultConversion:
    """Status code to exception mapping."""

    @pytest.mark.parametrize(
        "status, expected",
        [
            (401, AuthenticationError),
            (404, NotFoundError),
            (409, ConflictError),
            (429, RateLimitError),
            (500, ServiceUnavailableError),
            (502, ServiceUnavailableError),
            (503, ServiceUnavailableError),
            (504, ServiceUnavailableError),
            (418, APIError),
        ],
    )
    def test_mapping(self, status, expected):
        exc = ErrorResult(status_code=status, data={}).to_exception()
        assert type(exc) is expected

    def test_bad_request_is_validation_error(self):
        exc = ErrorResult(status_code=400, data=_fault({"code": "2010"})).to_exception()
        assert isinstance(exc, ValidationError)
        assert isinstance(exc, APIError)
        assert exc.error_code == "2010"

    def test_authentication_error_code(self):
        exc = ErrorResult(
            status_code=401, data=_fault({"code": "3200", "Message": "AuthFail"})
        ).to_exception()
        assert exc.error_code == "3200"
        assert str(exc) == "3200: AuthFail"

    def test_not_found_carries_response(self):
        result = ErrorResult(status_code=404, data={})
        exc = result.to_exception()
        assert exc.status_code == 404
        assert exc.response is result

    def test_rate_limit_retry_after(self):
        result = ErrorResult(status_code=429, data={}, headers={"retry-after": "12"})
        exc = result.to_exception()
        assert exc.status_code == 429
        assert exc.retry_after == 12.0

    def test_raise_for_error(self):
        with pytest.raises(NotFoundError):
            ErrorResult(status_code=404, data={}).raise_for_error()


class TestParseRetryAfter:
    """Retry-After header parsing."""

    def test_seconds(self):
        assert parse_retry_after({"Retry-After": "30"}) == 30.0

    def test_case_insensitive(self):
        assert parse_retry_after({"retry-after": "5"}) == 5.0

    def test_http_date(self):
        future = datetime.now(timezone.utc) + timedelta(seconds=120)
        value = parse_retry_after({"Retry-After": format_datetime(future, usegmt=True)})
        assert 100 < value <= 120

    def test_missing_or_invalid(self):
        assert parse_retry_after({}) is None
        assert parse_retry_after({"Retry-After": "soon"}) is None
