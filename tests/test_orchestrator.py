"""
Tests for aftersales/orchestrator.py
====================================
The agent runtime is replaced with FakeRuntime, which replays scripted
message streams; the SessionStore is real (tmp_path).

Covers:
  - exit commands bypass the runtime entirely (works with a broken runtime)
  - busy: a second message during an exchange is dropped with a notice
  - routing: access-code messages get the query prompt, others go raw
  - new session ids are persisted on the init message, before the reply
  - store file I/O during an exchange stays off the event loop thread
  - fallbacks for empty replies, runtime errors and exceptions
  - resume: known ids continue, unknown ids start fresh
  - extract_access_code heuristics
"""
import asyncio
import random
import threading

import pytest

from aftersales.models import Session, SessionMode
from aftersales.orchestrator import (
    ConversationOrchestrator,
    ExchangeState,
    ReplyKind,
    extract_access_code,
    is_exit_command,
    random_picker,
)
from aftersales.prompts import BUSY_REPLY, FALLBACK_RESPONSES, GOODBYE
from aftersales.runtime import AssistantMessage, ErrorMessage, InitMessage
from aftersales.sessions import SessionStore


class FakeRuntime:
    """
    Replays `script` for every run(). Records (prompt, resume) per call.
    If `gate` is set, run() waits on it after the init message.
    """

    def __init__(self, script=None, raises: Exception | None = None, session_id: str = "sess-1"):
        self.script     = script
        self.raises     = raises
        self.session_id = session_id
        self.calls: list[tuple[str, str | None]] = []
        self.gate: asyncio.Event | None = None

    async def run(self, prompt, *, resume=None):
        self.calls.append((prompt, resume))
        if self.raises:
            raise self.raises
        yield InitMessage(session_id=resume or self.session_id)
        if self.gate is not None:
            await self.gate.wait()
        for message in self.script if self.script is not None else [AssistantMessage(text="您好！")]:
            yield message


class BrokenRuntime:
    async def run(self, prompt, *, resume=None):
        raise AssertionError("runtime must not be called")
        yield  # pragma: no cover


@pytest.fixture
def store(tmp_path) -> SessionStore:
    return SessionStore(str(tmp_path / "sessions.json"))


def _orchestrator(runtime, store, **kwargs) -> ConversationOrchestrator:
    kwargs.setdefault("picker", random_picker(random.Random(0)))
    return ConversationOrchestrator(runtime, store, **kwargs)


class TestExitCommands:
    @pytest.mark.parametrize("text", ["quit", "exit", "  EXIT  ", "Quit"])
    async def test_exit_never_touches_runtime(self, store, text):
        reply = await _orchestrator(BrokenRuntime(), store).handle(text)
        assert reply.kind is ReplyKind.EXIT
        assert reply.is_exit is True
        assert reply.content == GOODBYE

    def test_is_exit_command(self):
        assert is_exit_command("exit") is True
        assert is_exit_command("exit now") is False


class TestBusy:
    async def test_second_message_during_exchange_is_dropped(self, store):
        runtime = FakeRuntime()
        runtime.gate = asyncio.Event()
        orch = _orchestrator(runtime, store)

        first = asyncio.create_task(orch.handle("你好"))
        while not runtime.calls:
            await asyncio.sleep(0)

        second = await orch.handle("还在吗？")
        runtime.gate.set()
        reply = await first

        assert second.kind is ReplyKind.BUSY
        assert second.content == BUSY_REPLY
        assert reply.kind is ReplyKind.REPLY
        assert len(runtime.calls) == 1
        assert orch.state is ExchangeState.IDLE

    async def test_exit_still_works_while_busy(self, store):
        runtime = FakeRuntime()
        runtime.gate = asyncio.Event()
        orch = _orchestrator(runtime, store)

        first = asyncio.create_task(orch.handle("你好"))
        while not runtime.calls:
            await asyncio.sleep(0)

        reply = await orch.handle("quit")
        runtime.gate.set()
        await first

        assert reply.kind is ReplyKind.EXIT


class TestRouting:
    async def test_access_code_message_gets_query_prompt(self, store):
        runtime = FakeRuntime()
        await _orchestrator(runtime, store).handle("我的 access code 是 ABC12345，能退款吗？")

        prompt, _ = runtime.calls[0]
        assert "ABC12345" in prompt
        assert prompt != "我的 access code 是 ABC12345，能退款吗？"

    async def test_plain_message_goes_raw(self, store):
        runtime = FakeRuntime()
        await _orchestrator(runtime, store).handle("退款政策是什么？")
        assert runtime.calls[0][0] == "退款政策是什么？"

    async def test_history_records_both_sides(self, store):
        orch = _orchestrator(FakeRuntime(), store)
        await orch.handle("你好")
        assert [e.role for e in orch.history] == ["system", "user", "assistant"]
        assert orch.history[-1].content == "您好！"


class TestSessionPersistence:
    async def test_new_session_saved_on_init(self, store):
        seen_during_run = []

        class Spy(FakeRuntime):
            async def run(self, prompt, *, resume=None):
                async for message in super().run(prompt, resume=resume):
                    if isinstance(message, AssistantMessage):
                        seen_during_run.append(store.get(self.session_id))
                    yield message

        orch  = _orchestrator(Spy(session_id="new-123"), store, mode=SessionMode.QUERY)
        reply = await orch.handle("你好")

        assert reply.session_id == "new-123"
        assert seen_during_run[0] is not None
        assert seen_during_run[0].mode is SessionMode.QUERY

    async def test_same_session_reused_across_turns(self, store):
        runtime = FakeRuntime(session_id="sess-1")
        orch = _orchestrator(runtime, store)

        await orch.handle("第一句")
        await orch.handle("第二句")

        assert runtime.calls[0][1] is None
        assert runtime.calls[1][1] == "sess-1"
        assert len(store.load()) == 1

    async def test_last_accessed_is_bumped(self, store):
        orch = _orchestrator(FakeRuntime(session_id="sess-1"), store)
        await orch.handle("第一句")
        first = store.get("sess-1").last_accessed_at
        await orch.handle("第二句")
        assert store.get("sess-1").last_accessed_at >= first

    async def test_store_io_runs_off_the_event_loop(self, tmp_path):
        loop_thread = threading.get_ident()
        io_threads: list[tuple[str, int]] = []

        class RecordingStore(SessionStore):
            def get(self, session_id):
                io_threads.append(("get", threading.get_ident()))
                return super().get(session_id)

            def save(self, session):
                io_threads.append(("save", threading.get_ident()))
                super().save(session)

            def touch(self, session_id):
                io_threads.append(("touch", threading.get_ident()))
                return super().touch(session_id)

        store = RecordingStore(str(tmp_path / "sessions.json"))
        orch  = _orchestrator(FakeRuntime(session_id="sess-1"), store)

        await orch.handle("第一句")
        await orch.handle("第二句")

        assert {op for op, _ in io_threads} == {"get", "save", "touch"}
        assert all(ident != loop_thread for _, ident in io_threads)


class TestFallback:
    async def test_empty_reply_uses_fallback(self, store):
        runtime = FakeRuntime(script=[AssistantMessage(text="   ")])
        reply = await _orchestrator(runtime, store).handle("你好")
        assert reply.kind is ReplyKind.FALLBACK
        assert reply.content in FALLBACK_RESPONSES

    async def test_error_message_uses_fallback(self, store):
        runtime = FakeRuntime(script=[ErrorMessage(error="model unavailable")])
        reply = await _orchestrator(runtime, store).handle("你好")
        assert reply.kind is ReplyKind.FALLBACK

    async def test_runtime_exception_uses_fallback(self, store):
        runtime = FakeRuntime(raises=RuntimeError("boom"))
        orch  = _orchestrator(runtime, store)
        reply = await orch.handle("你好")

        assert reply.kind is ReplyKind.FALLBACK
        assert reply.content in FALLBACK_RESPONSES
        assert orch.state is ExchangeState.IDLE

    async def test_seeded_picker_is_deterministic(self, store):
        def run_once():
            runtime = FakeRuntime(script=[])
            return _orchestrator(runtime, store, picker=random_picker(random.Random(42))).handle("x")

        first  = await run_once()
        second = await run_once()
        assert first.content == second.content

    async def test_custom_picker(self, store):
        orch = _orchestrator(FakeRuntime(script=[]), store, picker=lambda options: options[-1])
        reply = await orch.handle("你好")
        assert reply.content == FALLBACK_RESPONSES[-1]


class TestResume:
    async def test_unknown_id_starts_fresh(self, store):
        runtime = FakeRuntime(session_id="fresh-1")
        orch = _orchestrator(runtime, store, resume_id="does-not-exist")

        assert orch.resumed is False
        assert orch.session_id is None

        reply = await orch.handle("你好")
        assert reply.kind is ReplyKind.REPLY
        assert runtime.calls[0][1] is None
        assert reply.session_id == "fresh-1"
        assert store.get("does-not-exist") is None

    async def test_known_id_continues(self, store):
        store.save(Session(id="old-1", mode=SessionMode.QUERY))
        runtime = FakeRuntime()
        orch = _orchestrator(runtime, store, resume_id="old-1", mode=SessionMode.CHAT)

        assert orch.resumed is True
        assert orch.mode is SessionMode.QUERY

        await orch.handle("继续")
        assert runtime.calls[0][1] == "old-1"
        assert len(store.load()) == 1


class TestExtractAccessCode:
    @pytest.mark.parametrize("text,expected", [
        ("我的 access code 是 ABC12345", "ABC12345"),
        ("code: abcd1234efgh please", "abcd1234efgh"),
        ("查一下 XYZ99999 和 QWE12345", "XYZ99999"),
    ])
    def test_finds_code(self, text, expected):
        assert extract_access_code(text) == expected

    @pytest.mark.parametrize("text", [
        "退款政策是什么？",
        "short ABC123",
        "visit ghibliflowstudio for help",
        "AAAAAAAA",
        "https://www.ghibliflowstudio.com/help",
    ])
    def test_rejects_non_codes(self, text):
        assert extract_access_code(text) is None
