"""
Tool Registry
=============
The operations the agent is allowed to call, each with a strict input schema.

Tools:
  - check_access_code_refund  → Read-only. Fetch + evaluate + render report.
  - deactivate_access_code    → WRITE. Re-fetches current state, then sets
                                isActive=false on the remote record.
  - simulate_browser_access   → Generic HTTP probe, limited to the allowed
                                domain by the security gate.

Every call goes through ToolRegistry.invoke():

    payload ──► schema validation ──► security gate ──► handler ──► ToolResult

The public per-tool methods are thin wrappers around invoke(), so no caller
can reach a handler without validation and the gate. Handlers never raise:
every failure becomes a ToolResult with ok=False and a readable message.
"""
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .client import AccessCodeClient
from .config import Settings
from .errors import ErrorKind, Failure
from .models import ToolInvocationRequest
from .refund_policy import evaluate, render_deactivation, render_report
from .security import ToolSecurityGate

logger = logging.getLogger(__name__)

PROBE_BODY_LIMIT = 500


# ── Input schemas ───────────────────────────────────────────────────────────

class _ToolInput(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")


class CheckRefundInput(_ToolInput):
    access_code: str = Field(min_length=1, description="需要查询的 access code")


class DeactivateInput(_ToolInput):
    access_code: str = Field(min_length=1, description="需要停用的 access code")
    reason: str = Field(
        default="user_refund_request", description="停用原因，如 'user_refund_request'"
    )


class BrowserProbeInput(_ToolInput):
    url: str = Field(min_length=1, description="要访问的 URL")
    method: str = Field(default="GET", description="HTTP 方法")
    headers: dict[str, str] | None = Field(default=None, description="自定义请求头")
    data: Any = Field(default=None, description="请求体数据")


class ToolResult(BaseModel):
    ok: bool
    text: str
    error: ErrorKind | None = None
    stop_reason: str | None = None

    @classmethod
    def success(cls, text: str) -> "ToolResult":
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, kind: ErrorKind, text: str) -> "ToolResult":
        return cls(ok=False, text=text, error=kind)


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "input"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def _fetch_failure_text(code: str, failure: Failure) -> str:
    if failure.kind is ErrorKind.NOT_FOUND:
        return f"检查失败：Access code {code} 不存在或无效。（{failure.message}）"
    return f"检查失败：暂时无法获取 access code 信息（{failure.message}），请稍后重试。"


# ── Registry ────────────────────────────────────────────────────────────────

Handler = Callable[[Any], Awaitable[ToolResult]]


class ToolRegistry:
    """
    Args:
        settings: Pricing and tier configuration for the refund policy.
        client:   Remote access-code API client.
        gate:     Security gate consulted before every handler runs.
        http:     Client used by the browser probe. Created lazily if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        client: AccessCodeClient,
        gate: ToolSecurityGate,
        http: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._client   = client
        self._gate     = gate
        self._http     = http
        self._owns_http = http is None
        self._tools: dict[str, tuple[type[_ToolInput], Handler]] = {
            "check_access_code_refund": (CheckRefundInput,  self._check),
            "deactivate_access_code":   (DeactivateInput,   self._deactivate),
            "simulate_browser_access":  (BrowserProbeInput, self._probe),
        }

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schema(self, name: str) -> dict:
        return self._tools[name][0].model_json_schema()

    async def invoke(self, name: str, payload: dict[str, Any] | None) -> ToolResult:
        if name not in self._tools:
            return ToolResult.failure(ErrorKind.VALIDATION, f"未知工具: {name}")

        schema, handler = self._tools[name]
        try:
            params = schema.model_validate(payload or {})
        except ValidationError as exc:
            summary = _validation_summary(exc)
            logger.info("[tools] %s rejected invalid input: %s", name, summary)
            return ToolResult.failure(ErrorKind.VALIDATION, f"参数校验失败：{summary}")

        decision = self._gate.evaluate(
            ToolInvocationRequest(tool_name=name, tool_input=params.model_dump())
        )
        if decision.blocked:
            return ToolResult(
                ok=False,
                text=decision.stop_reason or "操作被安全策略阻止",
                error=ErrorKind.SECURITY_BLOCK,
                stop_reason=decision.stop_reason,
            )

        logger.info("[tools] %s %s", name, params.model_dump(exclude_none=True))
        return await handler(params)

    # ── Public operations ──────────────────────────────────────────────────

    async def check_access_code_refund(self, access_code: str) -> ToolResult:
        return await self.invoke("check_access_code_refund", {"access_code": access_code})

    async def deactivate_access_code(
        self, access_code: str, reason: str = "user_refund_request"
    ) -> ToolResult:
        return await self.invoke(
            "deactivate_access_code", {"access_code": access_code, "reason": reason}
        )

    async def simulate_browser_access(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        data: Any = None,
    ) -> ToolResult:
        return await self.invoke(
            "simulate_browser_access",
            {"url": url, "method": method, "headers": headers, "data": data},
        )

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()

    # ── Handlers ───────────────────────────────────────────────────────────

    def _evaluate(self, info):
        return evaluate(
            info,
            price_per_use=self._settings.price_per_use,
            tiers=self._settings.refundable_tiers,
            default_initial_uses=self._settings.default_initial_uses,
        )

    async def _check(self, params: CheckRefundInput) -> ToolResult:
        info = await self._client.fetch_info(params.access_code)
        if isinstance(info, Failure):
            return ToolResult.failure(info.kind, _fetch_failure_text(params.access_code, info))
        return ToolResult.success(render_report(info, self._evaluate(info)))

    async def _deactivate(self, params: DeactivateInput) -> ToolResult:
        code = params.access_code

        # Always re-read: the remote record may have changed since any earlier check.
        info = await self._client.fetch_info(code)
        if isinstance(info, Failure):
            return ToolResult.failure(
                info.kind, f"❌ 获取 access code 信息失败：{info.message}。未执行停用操作。"
            )

        update = await self._client.set_active(code, False, params.reason)
        if isinstance(update, Failure):
            return ToolResult.failure(
                update.kind,
                f"❌ 停用失败：{update.message}。可能是 access code 不存在、权限不足或已经被停用。",
            )

        evaluation = self._evaluate(info)
        return ToolResult.success(render_deactivation(
            info, evaluation, params.reason, price_per_use=self._settings.price_per_use
        ))

    async def _probe(self, params: BrowserProbeInput) -> ToolResult:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._settings.request_timeout)

        try:
            response = await self._http.request(
                params.method.upper(),
                params.url,
                headers={"User-Agent": "AfterSalesAgent/1.0.0", **(params.headers or {})},
                json=params.data,
            )
        except httpx.HTTPError as exc:
            logger.warning("[tools] probe %s failed: %s", params.url, exc)
            return ToolResult.failure(ErrorKind.TRANSIENT, f"查询失败: {exc}")

        content_type = response.headers.get("content-type", "")
        body: Any
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = {"raw": response.text[:PROBE_BODY_LIMIT]}
        else:
            text = response.text
            body = {"html": text[:PROBE_BODY_LIMIT] + ("..." if len(text) > PROBE_BODY_LIMIT else "")}

        return ToolResult(
            ok=response.is_success,
            text=(
                "查询结果：\n"
                f"状态: {response.status_code}\n"
                f"内容类型: {content_type}\n"
                f"响应数据: {json.dumps(body, ensure_ascii=False, indent=2)}"
            ),
            error=None if response.is_success else ErrorKind.TRANSIENT,
        )
