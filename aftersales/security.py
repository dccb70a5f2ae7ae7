"""
Tool Security Gate
==================
Runs before every tool invocation the agent proposes. The tool body only runs
if every check bound to that tool says "continue".

Two checks:
  1. Filesystem - for tools that operate on a `file_path`:
       · sensitive extension (.js/.ts/.json) outside the allowed root → block
       · path containing a sensitive substring (~/.ssh/, .env, lockfiles…) → block
  2. Domain     - for tools that take a `url`: host must be the allowed domain
                  or one of its subdomains.

Checks are bound to tools through HookMatcher(pattern, checks). Every matcher
whose pattern matches the tool name contributes its checks; all of them are
evaluated and a single block denies the call.

Decision wire shape (what the agent sees):
    permit → {"continue": true}
    deny   → {"decision": "block", "stopReason": "...", "continue": false}
"""
import logging
import os
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .models import ToolInvocationRequest

logger = logging.getLogger(__name__)

FILE_TOOLS_PATTERN = r"Write|Edit|MultiEdit|Read"
URL_TOOLS_PATTERN  = r"simulate_browser_access"


class GateDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    continue_: bool = Field(alias="continue")
    decision: Literal["block"] | None = None
    stop_reason: str | None = Field(default=None, alias="stopReason")

    @property
    def blocked(self) -> bool:
        return not self.continue_

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


PERMIT = GateDecision(continue_=True)


def block(reason: str) -> GateDecision:
    return GateDecision(continue_=False, decision="block", stop_reason=reason)


Check = Callable[[ToolInvocationRequest], GateDecision]


# ── Checks ──────────────────────────────────────────────────────────────────

def _within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # Different drives, or mixing absolute and relative paths
        return False


@dataclass(frozen=True)
class FileAccessCheck:
    allowed_root: str
    sensitive_extensions: frozenset[str]
    sensitive_paths: Sequence[str]
    home: str = field(default_factory=lambda: os.path.expanduser("~"))

    def __call__(self, request: ToolInvocationRequest) -> GateDecision:
        raw = request.tool_input.get("file_path")
        if not isinstance(raw, str) or not raw:
            return PERMIT

        path = os.path.realpath(os.path.expanduser(raw))
        root = os.path.realpath(os.path.expanduser(self.allowed_root))

        ext = os.path.splitext(path)[1].lower()
        if ext in self.sensitive_extensions and not _within(path, root):
            return block(f"文件操作被阻止。为安全起见，只能在 {root} 目录下操作 {ext} 文件。")

        for pattern in self.sensitive_paths:
            resolved = pattern.replace("~", self.home, 1) if pattern.startswith("~") else pattern
            if resolved in path or resolved in raw:
                return block(f"不允许访问敏感文件: {pattern}")

        return PERMIT


@dataclass(frozen=True)
class DomainAllowlistCheck:
    allowed_domain: str

    def __call__(self, request: ToolInvocationRequest) -> GateDecision:
        url = request.tool_input.get("url")
        if url is None:
            return PERMIT

        host = ""
        if isinstance(url, str):
            try:
                host = (urlsplit(url).hostname or "").lower()
            except ValueError:
                host = ""

        domain = self.allowed_domain.lower()
        if host and (host == domain or host.endswith("." + domain)):
            return PERMIT
        return block(f"只允许访问 {domain} 域名，禁止访问: {url}")


# ── Gate ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class HookMatcher:
    pattern: str
    checks: tuple[Check, ...]

    def matches(self, tool_name: str) -> bool:
        return re.fullmatch(self.pattern, tool_name) is not None


class ToolSecurityGate:
    def __init__(self, matchers: Sequence[HookMatcher]):
        self._matchers = tuple(matchers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ToolSecurityGate":
        return cls([
            HookMatcher(FILE_TOOLS_PATTERN, (FileAccessCheck(
                allowed_root=settings.allowed_file_root,
                sensitive_extensions=settings.sensitive_extensions,
                sensitive_paths=settings.sensitive_paths,
            ),)),
            HookMatcher(URL_TOOLS_PATTERN, (DomainAllowlistCheck(settings.allowed_domain),)),
        ])

    def checks_for(self, tool_name: str) -> list[Check]:
        return [
            check
            for matcher in self._matchers if matcher.matches(tool_name)
            for check in matcher.checks
        ]

    def evaluate(self, request: ToolInvocationRequest) -> GateDecision:
        """Run every check bound to the tool. The first block found is returned."""
        decisions = [check(request) for check in self.checks_for(request.tool_name)]
        for decision in decisions:
            if decision.blocked:
                logger.warning(
                    "[gate] blocked tool=%s reason=%r", request.tool_name, decision.stop_reason
                )
                return decision
        return PERMIT
