"""
K8s API errors, as seen by the fixtures.

The fixtures talk to the API via ``aiohttp``, but its exceptions do not leak
to the tests for the API-level failures: every non-2xx response is converted
to one of the classes below, chosen by the HTTP status, and carries the API's
own ``Status`` payload (if any). The payload's message is what ends up
in the test failure reports, e.g. "rollouts.argoproj.io "x" not found".

Connectivity failures (DNS, refused connections, SSL, timeouts) are not
API errors and are raised from ``aiohttp``/``asyncio`` as they are.
"""
import collections.abc
import json
from typing import Collection, Mapping, Optional, Type

import aiohttp
from typing_extensions import Literal, TypedDict


class RawStatusCause(TypedDict):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict):
    name: str
    uid: str
    retryAfterSeconds: int
    kind: str
    group: str
    causes: Collection[RawStatusCause]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.19/#status-v1-meta
class RawStatus(TypedDict):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):

    def __init__(
            self,
            payload: Optional[RawStatus],
            *,
            status: int,
    ) -> None:
        message = payload.get('message') if payload else None
        super().__init__(message, payload)
        self._status = status
        self._payload = payload

    def __str__(self) -> str:
        return self.message or f"HTTP {self.status}"

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> Optional[int]:
        return self._payload.get('code') if self._payload else None

    @property
    def message(self) -> Optional[str]:
        return self._payload.get('message') if self._payload else None

    @property
    def details(self) -> Optional[RawStatusDetails]:
        return self._payload.get('details') if self._payload else None


class APIUnauthorizedError(APIError):
    pass


class APIForbiddenError(APIError):
    pass


class APINotFoundError(APIError):
    pass


class APIConflictError(APIError):
    pass


class APIUnprocessableEntityError(APIError):
    pass


# The specialised errors by HTTP statuses; all other statuses >=400 are the generic API errors.
ERRORS_BY_STATUS: Mapping[int, Type[APIError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
    422: APIUnprocessableEntityError,
}


async def check_response(
        response: aiohttp.ClientResponse,
) -> None:
    """
    Raise the API error for the failed responses, with the API's explanation if provided.
    """
    if response.status < 400:
        return

    # The body must be read before raise_for_status(), which releases the connection.
    payload: Optional[RawStatus]
    try:
        payload = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        payload = None

    # Only the K8s statuses are trusted to be safe for putting into the test reports.
    if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
        payload = None

    cls = ERRORS_BY_STATUS.get(response.status, APIError)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
