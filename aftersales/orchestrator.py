"""
Conversation Orchestrator
=========================
Drives one interactive run: takes user text, decides how to hand it to the
agent runtime, persists the session handle, and always returns something to
show the user.

Exchange state machine:

    IDLE ──► PROCESSING ──► TOOL_DELEGATION ──┐
                  │                           ├──► IDLE
                  └────────► DIRECT_REPLY ────┘

  - Exit commands ("quit", "exit") are recognised before anything else, so
    exit works even when the runtime or network is down.
  - A message that arrives while an exchange is in flight gets a busy notice
    and is dropped, not queued.
  - TOOL_DELEGATION: an access-code-shaped token was found; the runtime gets a
    query prompt naming it. DIRECT_REPLY: the raw text goes to the runtime as
    open conversation (the agent may still use tools).
  - A new session id from the runtime is saved immediately, before the
    exchange finishes. Store reads and writes during an exchange run in a
    worker thread so the event loop is never blocked on file I/O.
  - An empty reply, a runtime error, or an exception is replaced with one of
    the fallback messages.
"""
import asyncio
import logging
import random
import re
from collections.abc import Callable, Sequence
from enum import Enum

from pydantic import BaseModel, Field

from .models import HistoryEntry, Session, SessionMode
from .prompts import BUSY_REPLY, FALLBACK_RESPONSES, GOODBYE, SYSTEM_PROMPT, create_query_prompt
from .runtime import AgentRuntime, AssistantMessage, ErrorMessage, InitMessage
from .sessions import SessionStore

logger = logging.getLogger(__name__)


# ── Input helpers ───────────────────────────────────────────────────────────

EXIT_COMMANDS = frozenset({"quit", "exit"})

_CODE_CANDIDATE = re.compile(r"[A-Z0-9]{8,}", re.IGNORECASE)
_REPEATED_CHAR  = re.compile(r"^([A-Z0-9])\1{7,}$", re.IGNORECASE)
_CODE_BLACKLIST = (
    "ghibliflow", "ghibliflowstudio", "studio", "website", "link", "url",
    "http", "https", "www", "com", "org", "net",
)


def is_exit_command(message: str) -> bool:
    return message.strip().lower() in EXIT_COMMANDS


def extract_access_code(text: str) -> str | None:
    """
    Return the first plausible access code in `text`: 8+ letters/digits, not
    containing a site/URL word, not one character repeated.
    """
    for match in _CODE_CANDIDATE.findall(text):
        lowered = match.lower()
        if any(word in lowered for word in _CODE_BLACKLIST):
            continue
        if _REPEATED_CHAR.match(match):
            continue
        return match
    return None


FallbackPicker = Callable[[Sequence[str]], str]


def random_picker(rng: random.Random | None = None) -> FallbackPicker:
    """Uniform choice over the fallbacks. Seed `rng` for deterministic tests."""
    rng = rng or random.Random()
    return lambda options: rng.choice(list(options))


# ── Orchestrator ────────────────────────────────────────────────────────────

class ExchangeState(str, Enum):
    IDLE            = "idle"
    PROCESSING      = "processing"
    TOOL_DELEGATION = "tool_delegation"
    DIRECT_REPLY    = "direct_reply"


class ReplyKind(str, Enum):
    REPLY    = "reply"
    FALLBACK = "fallback"
    BUSY     = "busy"
    EXIT     = "exit"


class Reply(BaseModel):
    kind: ReplyKind
    content: str
    session_id: str | None = None
    tool_names: list[str] = Field(default_factory=list)

    @property
    def is_exit(self) -> bool:
        return self.kind is ReplyKind.EXIT


class ConversationOrchestrator:
    """
    Args:
        runtime:   The agent runtime (see runtime.py).
        store:     Where session handles are persisted. The orchestrator keeps
                   only the current id; the store is the source of truth.
        mode:      Interaction mode recorded with new sessions.
        resume_id: Session to continue. Unknown ids start a fresh session.
        picker:    Chooses among fallback messages.
    """

    def __init__(
        self,
        runtime: AgentRuntime,
        store: SessionStore,
        mode: SessionMode = SessionMode.CHAT,
        resume_id: str | None = None,
        picker: FallbackPicker | None = None,
        fallbacks: Sequence[str] = FALLBACK_RESPONSES,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self._runtime   = runtime
        self._store     = store
        self._mode      = mode
        self._picker    = picker or random_picker()
        self._fallbacks = tuple(fallbacks)
        self.state      = ExchangeState.IDLE
        self.session_id: str | None = None
        self.resumed    = False
        self.history: list[HistoryEntry] = [HistoryEntry(role="system", content=system_prompt)]

        if resume_id:
            existing = store.get(resume_id)
            if existing is None:
                logger.warning("[orchestrator] Session %s not found; starting fresh", resume_id)
            else:
                self.session_id = existing.id
                self._mode      = existing.mode
                self.resumed    = True

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def busy(self) -> bool:
        return self.state is not ExchangeState.IDLE

    def _fallback(self) -> str:
        return self._picker(self._fallbacks)

    async def _record_session(self, session_id: str) -> None:
        if session_id == self.session_id:
            if await asyncio.to_thread(self._store.get, session_id) is not None:
                return
        self.session_id = session_id
        await asyncio.to_thread(self._store.save, Session(id=session_id, mode=self._mode))
        logger.info("[orchestrator] New session %s", session_id)

    def _route(self, message: str) -> tuple[ExchangeState, str]:
        code = extract_access_code(message)
        if code:
            return ExchangeState.TOOL_DELEGATION, create_query_prompt(message, code)
        return ExchangeState.DIRECT_REPLY, message

    async def handle(self, message: str) -> Reply:
        """Run one exchange and return what should be shown to the user."""
        text = message.strip()

        if is_exit_command(text):
            return Reply(kind=ReplyKind.EXIT, content=GOODBYE, session_id=self.session_id)

        if self.busy:
            return Reply(kind=ReplyKind.BUSY, content=BUSY_REPLY, session_id=self.session_id)

        self.state = ExchangeState.PROCESSING
        try:
            self.history.append(HistoryEntry(role="user", content=text))
            self.state, prompt = self._route(text)
            logger.info("[orchestrator] %s", self.state.value)

            reply_text = ""
            tool_names: list[str] = []
            try:
                async for event in self._runtime.run(prompt, resume=self.session_id):
                    if isinstance(event, InitMessage):
                        await self._record_session(event.session_id)
                    elif isinstance(event, AssistantMessage):
                        reply_text = event.text.strip() or reply_text
                        tool_names.extend(event.tool_names)
                    elif isinstance(event, ErrorMessage):
                        logger.warning("[orchestrator] Runtime error: %s", event.error)
            except Exception:
                logger.exception("[orchestrator] Agent runtime failed")

            kind = ReplyKind.REPLY
            if not reply_text:
                reply_text = self._fallback()
                kind = ReplyKind.FALLBACK

            self.history.append(HistoryEntry(role="assistant", content=reply_text))
            if self.session_id:
                await asyncio.to_thread(self._store.touch, self.session_id)

            return Reply(
                kind=kind, content=reply_text, session_id=self.session_id, tool_names=tool_names
            )
        finally:
            self.state = ExchangeState.IDLE
