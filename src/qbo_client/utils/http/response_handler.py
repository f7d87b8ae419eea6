"""Classification of raw HTTP responses into typed results."""

import json
import logging
from typing import Any, Dict, Union

import httpx

from ...models.request import Request
from ...models.results import ErrorResult, SuccessResult
from ..security import safe_log_dict

logger = logging.getLogger(__name__)


class ResponseHandler:
    """Turns ``httpx`` responses into :class:`SuccessResult` or :class:`ErrorResult`.

    Bodies that are not valid JSON never raise here; they become a
    diagnostic payload holding the raw text and the parse error.
    """

    def handle(
        self, response: httpx.Response, request: Request
    ) -> Union[SuccessResult, ErrorResult]:
        """Classify a response by status code.

        :param response: Raw HTTP response
        :type response: httpx.Response
        :param request: Request that produced it
        :type request: Request
        :return: Success for 2xx, error otherwise
        :rtype: Union[SuccessResult, ErrorResult]
        """
        logger.debug(
            f"Handling response: status={response.status_code} "
            f"request={request.to_safe_dict()}"
        )
        data = self.parse_json(response.text)
        if 200 <= response.status_code < 300:
            result_class = SuccessResult
        else:
            result_class = ErrorResult
            logger.warning(
                f"API error response: status={response.status_code} "
                f"body={safe_log_dict(data)}"
            )
        return result_class(
            data=data,
            status_code=response.status_code,
            headers=dict(response.headers),
            request=request,
        )

    @staticmethod
    def parse_json(body: str) -> Dict[str, Any]:
        """Parse a response body defensively.

        :param body: Response text
        :type body: str
        :return: Parsed object, ``{}`` for an empty body, or a diagnostic
                 payload if parsing fails
        :rtype: Dict[str, Any]
        """
        if not body or not body.strip():
            return {}
        try:
            parsed = json.loads(body)
        except ValueError as e:
            logger.warning(f"Failed to parse JSON response: {e}")
            return {"raw_response": body, "parse_error": str(e)}
        if not isinstance(parsed, dict):
            return {"data": parsed}
        return parsed
