# devstack_common/api_client.py
# -*- coding: utf-8 -*-
"""
Thin HTTP client used by every configuration step.

The client keeps no session state: credentials are passed with each call
and every call goes through ``requests.request``. A client-wide ``dry_run``
switch replaces all network I/O with tagged synthetic responses.
"""

import logging
import time
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

import requests
from requests.auth import AuthBase
from requests.structures import CaseInsensitiveDict

from .core_utils import mask_secret
from .errors import ApiError

module_logger = logging.getLogger(__name__)

AuthType = Union[AuthBase, Tuple[str, str], None]

SIMULATED_BODY = {"dry_run": True}


class BearerAuth(AuthBase):
    """``Authorization: Bearer <token>``."""

    def __init__(self, token: str):
        self.token = token

    def __call__(self, r):
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r

    def __repr__(self) -> str:
        return "BearerAuth(***)"


class HeaderTokenAuth(AuthBase):
    """Token sent in a product-specific header, e.g. ``X-Vault-Token``."""

    def __init__(self, header: str, token: str):
        self.header = header
        self.token = token

    def __call__(self, r):
        r.headers[self.header] = self.token
        return r

    def __repr__(self) -> str:
        return f"HeaderTokenAuth({self.header}=***)"


class SimulatedValue(str):
    """
    Placeholder for a value read from a dry-run response.

    Renders as ``<simulated:field>`` so it cannot be mistaken for a real
    identifier once written to the credentials file or the summary.
    """

    def __new__(cls, field: str):
        value = super().__new__(cls, f"<simulated:{field}>")
        value.field = field
        return value


def is_simulated(value: Any) -> bool:
    return isinstance(value, SimulatedValue)


class ApiResponse:
    """A successful HTTP response, real or simulated."""

    def __init__(
        self,
        status: int,
        body: Any = None,
        url: str = "",
        simulated: bool = False,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.status = status
        self.body = body
        self.url = url
        self.simulated = simulated
        self.headers = CaseInsensitiveDict(headers or {})

    def field(self, path: str) -> Any:
        """
        Extract a dotted field (``project.key``, ``items.0.id``) from a JSON body.

        Raises:
            ApiError: If the body does not contain the field.
        """
        if self.simulated:
            return SimulatedValue(path)

        current = self.body
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                raise ApiError(
                    f"Response from {self.url} is missing field '{path}'",
                    status=self.status,
                    body=self.body,
                )
        if current is None:
            raise ApiError(
                f"Response from {self.url} has an empty '{path}' field",
                status=self.status,
                body=self.body,
            )
        return current

    def __repr__(self) -> str:
        tag = " simulated" if self.simulated else ""
        return f"<ApiResponse {self.status}{tag} {self.url}>"


class ApiClient:
    """
    Issues HTTP requests and normalises failures into :class:`ApiError`.

    The client never retries; retry policy belongs to the calling step.
    """

    def __init__(
        self,
        dry_run: bool = False,
        timeout: float = 30.0,
        verify: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.dry_run = dry_run
        self.timeout = timeout
        self.verify = verify
        self.logger = logger or module_logger

    def request(
        self,
        method: str,
        url: str,
        json: Any = None,
        data: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        auth: AuthType = None,
        params: Optional[Mapping[str, Any]] = None,
        expected_status: Optional[Iterable[int]] = None,
        verify: Optional[bool] = None,
    ) -> ApiResponse:
        """
        Send one request.

        Args:
            method: HTTP method.
            url: Absolute URL.
            json: JSON-serialisable body.
            data: Form dict or raw string body.
            headers: Extra headers.
            auth: ``BearerAuth``, ``HeaderTokenAuth`` or a (user, password) tuple.
            params: Query string parameters.
            expected_status: Acceptable status codes; defaults to any 2xx.
            verify: Override TLS verification for this call.

        Returns:
            The parsed response.

        Raises:
            ApiError: On an unexpected status or a transport failure.
        """
        method = method.upper()
        accepted = tuple(expected_status) if expected_status else None

        if self.dry_run:
            status = accepted[0] if accepted else 200
            self.logger.info(f"DRY RUN: Would execute {method} {url}")
            return ApiResponse(status, dict(SIMULATED_BODY), url=url, simulated=True)

        self.logger.debug(f"API request: {method} {url} auth={_describe_auth(auth)}")
        start_time = time.monotonic()
        try:
            response = requests.request(
                method,
                url,
                json=json,
                data=data,
                headers=dict(headers) if headers else None,
                auth=auth,
                params=params,
                timeout=self.timeout,
                verify=self.verify if verify is None else verify,
            )
        except requests.exceptions.RequestException as e:
            raise ApiError(f"{method} {url} failed", cause=e) from e

        duration = time.monotonic() - start_time
        self.logger.debug(
            f"API response: {method} {url} -> {response.status_code} in {duration:.3f}s"
        )

        body = _decode_body(response)
        ok = (
            response.status_code in accepted
            if accepted
            else 200 <= response.status_code < 300
        )
        if not ok:
            raise ApiError(
                f"{method} {url} returned an unexpected status",
                status=response.status_code,
                body=body,
            )
        return ApiResponse(
            response.status_code, body, url=url, headers=response.headers
        )

    def get(self, url: str, **kwargs) -> ApiResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> ApiResponse:
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs) -> ApiResponse:
        return self.request("PUT", url, **kwargs)


def _decode_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _describe_auth(auth: AuthType) -> str:
    if auth is None:
        return "none"
    if isinstance(auth, tuple):
        return f"basic {auth[0]}:{mask_secret(auth[1])}"
    return repr(auth)
