"""
Remote submission service client.

Thin async wrapper over the account-opening REST API. Every transport or
non-2xx failure surfaces as RemoteServiceError so callers only ever handle one
exception family; a missing form summary (404) is not an error.
"""
from typing import Any, Dict, Optional, Protocol

import httpx

from formflow.observability.logging import log
from formflow.settings import settings
from formflow.store import models as m
from formflow.utils.phone import normalize_phone


class RemoteServiceError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteValidationError(RemoteServiceError):
    def __init__(self, message: str, field_errors: Dict[str, Any], status_code: Optional[int] = 400):
        super().__init__(message, status_code=status_code)
        self.field_errors = field_errors


SECTION_PATHS = {
    m.PERSONAL: "/AccountOpening/personal-details/{phone}",
    m.ADDRESS: "/AccountOpening/address-details",
    m.FINANCIAL: "/AccountOpening/financial-details",
    m.OTHER: "/AccountOpening/other-details",
    m.DOCUMENT: "/AccountOpening/document-details",
    m.EPAYMENT: "/AccountOpening/epayment-service",
    m.PASSBOOK: "/AccountOpening/passbook-muday",
    m.SIGNATURE: "/AccountOpening/digital-signature",
}


def _unwrap(body: Any) -> Any:
    """The service sometimes wraps results as {success, message, data}."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _flatten_errors(errors: Dict[str, Any]) -> str:
    parts = []
    for key, msgs in errors.items():
        if isinstance(msgs, (list, tuple)):
            parts.append(f"{key}: {', '.join(str(x) for x in msgs)}")
        else:
            parts.append(f"{key}: {msgs}")
    return " | ".join(parts)


def _raise_for_status(resp: httpx.Response, what: str) -> None:
    if 200 <= resp.status_code < 300:
        return
    body = _json_or_none(resp)
    if resp.status_code == 400 and isinstance(body, dict) and isinstance(body.get("errors"), dict):
        raise RemoteValidationError(
            f"{what} failed: {_flatten_errors(body['errors'])}",
            field_errors=body["errors"],
        )
    message = ""
    if isinstance(body, dict):
        message = str(body.get("message") or body.get("Message") or body.get("error") or "")
    if not message:
        message = (resp.text or "")[:300] or resp.reason_phrase
    raise RemoteServiceError(f"{what} failed ({resp.status_code}): {message}", status_code=resp.status_code)


class RemoteSubmissionClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        token = settings.REMOTE_API_TOKEN if token is None else token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.REMOTE_BASE_URL).rstrip("/"),
            timeout=settings.REMOTE_TIMEOUT_SEC if timeout is None else timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "RemoteSubmissionClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log(event="remote_transport_error", method=method, path=path,
                errorType=type(e).__name__, error=str(e)[:200])
            raise RemoteServiceError(f"Could not reach the account service: {type(e).__name__}") from e

    async def lookup_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        """Form summary for an in-progress application, or None when nothing is saved."""
        resp = await self._request("GET", f"/AccountOpening/form-summary/{normalize_phone(key)}")
        if resp.status_code == 404:
            return None
        _raise_for_status(resp, "Form lookup")
        summary = _unwrap(_json_or_none(resp))
        return summary if isinstance(summary, dict) and summary else None

    async def account_exists(self, key: str) -> bool:
        resp = await self._request("GET", f"/Accounts/exists/{normalize_phone(key)}")
        if resp.status_code == 404:
            return False
        _raise_for_status(resp, "Account check")
        body = _unwrap(_json_or_none(resp))
        if isinstance(body, dict):
            return bool(body.get("exists") or body.get("Exists"))
        return bool(body)

    async def create_or_update_section(
        self,
        section: str,
        payload: Dict[str, Any],
        submission_id: Optional[int] = None,
        resume_key: Optional[str] = None,
    ) -> int:
        if section == m.PERSONAL:
            if not resume_key:
                raise RemoteServiceError("Personal details require the applicant's phone number")
            path = SECTION_PATHS[section].format(phone=normalize_phone(resume_key))
        else:
            path = SECTION_PATHS[section]
        body = dict(payload)
        if submission_id is not None:
            body["CustomerId"] = submission_id
        resp = await self._request("POST", path, json=body)
        _raise_for_status(resp, f"Saving {section}")
        data = _unwrap(_json_or_none(resp))
        raw_id = data.get("id", data.get("Id")) if isinstance(data, dict) else None
        try:
            return int(raw_id)
        except (TypeError, ValueError):
            raise RemoteServiceError(f"Saving {section} returned no id", status_code=resp.status_code)

    async def upload_attachment(self, content: bytes, filename: str = "upload.bin") -> str:
        files = {"file": (filename, content, "application/octet-stream")}
        resp = await self._request("POST", "/AccountOpening/upload-file", files=files)
        _raise_for_status(resp, "Upload")
        body = _json_or_none(resp)
        url = ""
        if isinstance(body, dict):
            data = body.get("data")
            if isinstance(data, dict):
                url = data.get("url") or ""
            url = url or body.get("url") or (data if isinstance(data, str) else "")
        if not url:
            raise RemoteServiceError("Upload returned no url", status_code=resp.status_code)
        return url

    async def submit_application(self, customer_id: int) -> Dict[str, Any]:
        resp = await self._request("POST", f"/AccountOpening/submit/{customer_id}")
        _raise_for_status(resp, "Submission")
        body = _json_or_none(resp)
        return body if isinstance(body, dict) else {}


class SubmissionService(Protocol):
    """What the workflow needs from the remote side; RemoteSubmissionClient implements it."""

    async def lookup_by_key(self, key: str) -> Optional[Dict[str, Any]]: ...
    async def account_exists(self, key: str) -> bool: ...
    async def create_or_update_section(
        self,
        section: str,
        payload: Dict[str, Any],
        submission_id: Optional[int] = None,
        resume_key: Optional[str] = None,
    ) -> int: ...
    async def upload_attachment(self, content: bytes, filename: str = "upload.bin") -> str: ...
    async def submit_application(self, customer_id: int) -> Dict[str, Any]: ...
