"""
API Transport

Authenticated HTTP against the donation platform API.

GUARANTEES:
===========
1. Bearer credential resolved from SessionState at call time
2. Write-class calls without a credential fail BEFORE any network I/O
3. Every failure surfaces as a typed ClientError
4. No automatic retries
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
import httpx

from ..contracts.base import (
    ClientError, NetworkFailure, Unauthenticated, Forbidden, NotFound,
    ValidationFailed, ServerError, MalformedResponse
)
from ..observability import AuditLog, AuditEventType
from ..session import SessionState


DEFAULT_BASE_URL = "http://localhost:8000/api"

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# (field name, (filename, content, content type))
FileField = Tuple[str, Tuple[str, bytes, str]]


@dataclass
class TransportConfig:
    """HTTP transport configuration."""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    user_agent: str = "DonationClient/1.0"


class ApiTransport:
    """
    Thin wrapper over httpx.AsyncClient.

    `transport` lets tests plug in httpx.MockTransport or
    httpx.ASGITransport without touching the network.
    """

    def __init__(
        self,
        session: SessionState,
        config: Optional[TransportConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        audit: Optional[AuditLog] = None
    ):
        self._session = session
        self._config = config or TransportConfig()
        self._audit = audit or AuditLog()
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            transport=transport,
            headers={
                'Accept': 'application/json',
                'User-Agent': self._config.user_agent,
            },
        )

    @property
    def session(self) -> SessionState:
        return self._session

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> ApiTransport:
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
        data: Optional[Mapping[str, Any]] = None,
        files: Optional[Sequence[FileField]] = None,
        headers: Optional[Mapping[str, str]] = None,
        auth_required: Optional[bool] = None
    ) -> Any:
        """
        Issue one request and return the decoded JSON body.

        auth_required defaults to True for write-class methods.
        Returns None for empty (204) bodies.
        """
        method = method.upper()
        if auth_required is None:
            auth_required = method in WRITE_METHODS

        request_headers: Dict[str, str] = dict(headers or {})
        token = self._session.token
        if token:
            request_headers['Authorization'] = f"Bearer {token}"
        elif auth_required:
            self._audit.record(
                AuditEventType.REQUEST, "remote", f"{method} {path}",
                outcome="unauthenticated", reason="no_credential"
            )
            raise Unauthenticated("Authentication required")

        try:
            response = await self._client.request(
                method,
                path,
                params=_clean_params(params),
                json=json,
                data=_form_fields(data) if files or data else None,
                files=list(files) if files else None,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            self._audit.record(
                AuditEventType.REQUEST, "remote", f"{method} {path}",
                outcome="timeout"
            )
            raise NetworkFailure(f"Request timed out: {e}")
        except httpx.TransportError as e:
            self._audit.record(
                AuditEventType.REQUEST, "remote", f"{method} {path}",
                outcome="network_error"
            )
            raise NetworkFailure(f"Network failure: {e}")

        try:
            body = _decode(response)
            _raise_for_status(response, body)
        except ClientError as e:
            self._audit.record(
                AuditEventType.REQUEST, "remote", f"{method} {path}",
                outcome=e.code.name.lower(), status=response.status_code
            )
            raise

        self._audit.record(
            AuditEventType.REQUEST, "remote", f"{method} {path}",
            status=response.status_code
        )
        return body


# =============================================================================
# HELPERS
# =============================================================================

def _clean_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if not params:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = 1 if value else 0
        cleaned[key] = value
    return cleaned or None


def _form_fields(data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Flatten lists into Laravel-style `key[0]`, `key[1]` form fields."""
    fields: Dict[str, Any] = {}
    for key, value in (data or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                fields[f"{key}[{index}]"] = str(item)
        elif isinstance(value, bool):
            fields[key] = "1" if value else "0"
        else:
            fields[key] = str(value)
    return fields


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        if response.is_success:
            raise MalformedResponse(
                "Response body is not JSON", status_code=response.status_code
            )
        return None


def _message(body: Any, default: str) -> str:
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return default


def _field_errors(body: Any) -> Dict[str, Tuple[str, ...]]:
    errors = body.get("errors") if isinstance(body, Mapping) else None
    if not isinstance(errors, Mapping):
        return {}
    result: Dict[str, Tuple[str, ...]] = {}
    for field_name, messages in errors.items():
        if isinstance(messages, (list, tuple)):
            result[str(field_name)] = tuple(str(m) for m in messages)
        else:
            result[str(field_name)] = (str(messages),)
    return result


def _raise_for_status(response: httpx.Response, body: Any):
    status = response.status_code
    if status < 400:
        return
    if status == 401:
        raise Unauthenticated(_message(body, "Unauthenticated"), status)
    if status == 403:
        raise Forbidden(_message(body, "Forbidden"), status)
    if status == 404:
        raise NotFound(_message(body, "Not found"), status)
    if status in (400, 422):
        raise ValidationFailed(
            _message(body, "Validation failed"), status, _field_errors(body)
        )
    if status >= 500:
        raise ServerError(_message(body, f"HTTP {status}"), status)
    raise ServerError(_message(body, f"Unexpected HTTP {status}"), status)


def unwrap(body: Any) -> Any:
    """Return `body["data"]` when the response uses the item envelope."""
    if isinstance(body, Mapping) and "data" in body:
        return body["data"]
    if body is None:
        raise MalformedResponse("Empty response body")
    return body


__all__ = ['ApiTransport', 'TransportConfig', 'DEFAULT_BASE_URL', 'FileField', 'unwrap']
