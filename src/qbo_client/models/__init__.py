"""Pydantic models for requests and response results."""

from .request import Request
from .results import ErrorResult, FaultEntry, SuccessResult, parse_retry_after

__all__ = [
    "ErrorResult",
    "FaultEntry",
    "Request",
    "SuccessResult",
    "parse_retry_after",
]
