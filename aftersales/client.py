"""
Access Code API Client
======================
Thin async client for the remote access-code service.

    GET   {base}/access-codes/{code}   → {success, data: {code, usesRemaining, ...}}
    PATCH {base}/access-codes/{code}   ← {isActive, reason?}  → {success, data?}

Every request carries the bearer token and a bounded timeout. Nothing here
retries: each call makes exactly one request and reports the outcome as a
value (AccessCodeInfo / StatusUpdate on success, Failure otherwise). The
upstream sometimes answers with an HTML error page instead of JSON, so the
content type is checked before any parsing.

Logging is advisory; callers branch on the returned value only.
"""
import json
import logging
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import ErrorKind, Failure
from .models import AccessCodeInfo

logger = logging.getLogger(__name__)

USER_AGENT = "AfterSalesAgent/1.0.0"


class StatusUpdate(BaseModel):
    code: str
    is_active: bool
    reason: str | None = None


def _is_json(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("content-type", "").lower()


def _status_failure(response: httpx.Response, action: str) -> Failure:
    content_type = response.headers.get("content-type", "")
    if "text/html" in content_type.lower():
        logger.warning(
            "[client] %s returned an HTML page (status %d) instead of JSON; "
            "the endpoint may have moved or a proxy intercepted the request",
            action, response.status_code,
        )
    if response.status_code == 404:
        return Failure(
            kind=ErrorKind.NOT_FOUND,
            message=f"API 返回 {response.status_code} 错误，access code 不存在",
            status_code=response.status_code,
        )
    return Failure(
        kind=ErrorKind.TRANSIENT,
        message=f"API 返回 {response.status_code} 错误",
        status_code=response.status_code,
        detail=response.text[:500],
    )


def _parse_envelope(response: httpx.Response, action: str) -> dict | Failure:
    if not _is_json(response):
        content_type = response.headers.get("content-type", "") or "unknown"
        logger.warning("[client] %s: unexpected content type %s", action, content_type)
        return Failure(
            kind=ErrorKind.TRANSIENT,
            message=f"API 返回了非 JSON 响应（{content_type}）",
            status_code=response.status_code,
            detail=response.text[:500],
        )
    try:
        body = response.json()
    except ValueError as exc:
        logger.warning("[client] %s: JSON parse failed: %s", action, exc)
        return Failure(
            kind=ErrorKind.TRANSIENT,
            message="API 响应无法解析为 JSON",
            status_code=response.status_code,
            detail=str(exc),
        )
    if not isinstance(body, dict):
        return Failure(
            kind=ErrorKind.TRANSIENT,
            message="API 响应格式错误",
            status_code=response.status_code,
            detail=repr(body)[:500],
        )
    return body


class AccessCodeClient:
    """
    Usage:
        async with AccessCodeClient(settings) as client:
            info = await client.fetch_info("ABC12345")

    Pass `http` to supply a preconfigured httpx.AsyncClient (tests use one
    backed by httpx.MockTransport). An injected client is not closed by aclose().
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None):
        self._base_url = settings.api_base_url.rstrip("/")
        self._token    = settings.api_token
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.request_timeout)
        self._timeout = settings.request_timeout

        if not self._token:
            logger.warning("[client] GHIBLI_API_TOKEN is not set; requests will be rejected")

    async def __aenter__(self) -> "AccessCodeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _url(self, code: str) -> str:
        return f"{self._base_url}/access-codes/{quote(code, safe='')}"

    def _headers(self) -> dict[str, str]:
        return {
            "Accept":        "application/json",
            "Authorization": f"Bearer {self._token or ''}",
            "User-Agent":    USER_AGENT,
            "Cache-Control": "no-cache",
        }

    async def fetch_info(self, code: str) -> AccessCodeInfo | Failure:
        """Fetch the current record for `code`. Never raises."""
        url = self._url(code)
        logger.info("[client] GET %s (token %s...)", url, (self._token or "unset")[:6])

        try:
            response = await self._http.get(url, headers=self._headers(), timeout=self._timeout)
        except httpx.TimeoutException as exc:
            logger.warning("[client] GET %s timed out: %s", url, exc)
            return Failure(kind=ErrorKind.TRANSIENT, message="请求 API 超时", detail=str(exc))
        except httpx.HTTPError as exc:
            logger.warning("[client] GET %s failed: %s", url, exc)
            return Failure(kind=ErrorKind.TRANSIENT, message="无法连接 API 服务", detail=str(exc))

        if not response.is_success:
            return _status_failure(response, "fetch")

        body = _parse_envelope(response, "fetch")
        if isinstance(body, Failure):
            return body

        data = body.get("data")
        if not body.get("success") or not data:
            logger.info("[client] lookup for %s returned a failure envelope", code)
            return Failure(
                kind=ErrorKind.NOT_FOUND,
                message=f"Access code {code} 不存在或无效",
                status_code=response.status_code,
            )

        try:
            return AccessCodeInfo.model_validate(data)
        except ValidationError as exc:
            logger.warning("[client] malformed access code record for %s: %s", code, exc)
            return Failure(
                kind=ErrorKind.TRANSIENT,
                message="API 返回的 access code 数据不完整",
                status_code=response.status_code,
                detail=str(exc),
            )

    async def set_active(
        self, code: str, active: bool, reason: str | None = None
    ) -> StatusUpdate | Failure:
        """
        Set the code's active flag. Makes exactly one PATCH request.

        Success reports the requested end state, so calling twice with the same
        target yields the same StatusUpdate unless the upstream itself refuses.
        """
        url = self._url(code)
        payload: dict = {"isActive": active}
        if reason is not None:
            payload["reason"] = reason
        logger.info("[client] PATCH %s isActive=%s reason=%r", url, active, reason)

        headers = {**self._headers(), "Content-Type": "application/json"}
        try:
            response = await self._http.patch(
                url, json=payload, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            logger.warning("[client] PATCH %s timed out: %s", url, exc)
            return Failure(kind=ErrorKind.TRANSIENT, message="请求 API 超时", detail=str(exc))
        except httpx.HTTPError as exc:
            logger.warning("[client] PATCH %s failed: %s", url, exc)
            return Failure(kind=ErrorKind.TRANSIENT, message="无法连接 API 服务", detail=str(exc))

        if not response.is_success:
            return _status_failure(response, "update")

        body = _parse_envelope(response, "update")
        if isinstance(body, Failure):
            return body

        if not body.get("success"):
            return Failure(
                kind=ErrorKind.POLICY,
                message="API 拒绝了状态更新",
                status_code=response.status_code,
                detail=json.dumps(body, ensure_ascii=False)[:500],
            )

        return StatusUpdate(code=code, is_active=active, reason=reason)
