"""
Command-Line Interface
======================
Talk to the after-sales assistant in the terminal.

Usage:
    python main.py "我的 access code 是 ABC12345，可以退款吗？"   one query, then exit
    python main.py                                              interactive query loop
    python main.py --chat                                       interactive chat
    python main.py --resume <session-id>                        continue a saved session
    python main.py --list                                       list saved sessions

Type 'quit' or 'exit' to leave an interactive loop. Resuming an unknown
session id starts a fresh session instead of failing.
"""
import argparse
import asyncio
from collections.abc import Callable

from aftersales.config import configure_logging, load_settings
from aftersales.context import AppContext
from aftersales.models import SessionMode
from aftersales.orchestrator import ConversationOrchestrator
from aftersales.prompts import GREETING, HELP_TEXT
from aftersales.runtime import LangGraphRuntime, tools_for_mode
from aftersales.sessions import SessionStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="aftersales",
        description="Access-code refund support assistant.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-c", "--chat", action="store_true", help="interactive chat mode")
    group.add_argument("-r", "--resume", metavar="SESSION_ID", help="resume a saved session")
    group.add_argument("-l", "--list", action="store_true", help="list saved sessions")
    parser.add_argument("query", nargs="*", help="one-shot query text")
    return parser.parse_args(argv)


def format_sessions(store: SessionStore) -> str:
    sessions = store.load()
    if not sessions:
        return "暂无已保存的会话。"
    lines = ["已保存的会话:"]
    for s in sessions:
        lines.append(
            f"  {s.id}  [{s.mode.value}]  "
            f"创建于 {s.created_at:%Y-%m-%d %H:%M}  "
            f"最近访问 {s.last_accessed_at:%Y-%m-%d %H:%M}"
        )
    return "\n".join(lines)


async def interactive_loop(
    orchestrator: ConversationOrchestrator,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    while True:
        try:
            user_input = read("You: ").strip()
        except (EOFError, KeyboardInterrupt):
            write("\n再见！")
            return

        if not user_input:
            continue

        reply = await orchestrator.handle(user_input)
        write(f"\nAgent: {reply.content}\n")
        if reply.is_exit:
            return


async def run(
    args: argparse.Namespace,
    context: AppContext,
    runtime_factory: Callable = LangGraphRuntime,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    if args.list:
        write(format_sessions(context.store))
        return

    mode = SessionMode.QUERY if not (args.chat or args.resume) else SessionMode.CHAT
    if args.resume:
        existing = context.store.get(args.resume)
        if existing is not None:
            mode = existing.mode

    runtime = runtime_factory(context.settings, context.gate, allowed_tools=tools_for_mode(mode))
    await runtime.start()
    try:
        orchestrator = ConversationOrchestrator(
            runtime, context.store, mode=mode, resume_id=args.resume
        )

        if args.resume and not orchestrator.resumed:
            write(f"未找到会话 {args.resume}，已开始新的会话。")
        elif orchestrator.resumed:
            write(f"已恢复会话 {orchestrator.session_id}")

        if args.query and mode is SessionMode.QUERY:
            reply = await orchestrator.handle(" ".join(args.query))
            write(reply.content)
            return

        write(HELP_TEXT if mode is SessionMode.QUERY else GREETING)
        await interactive_loop(orchestrator, read=read, write=write)

        if orchestrator.session_id:
            write(f"会话 ID: {orchestrator.session_id}（使用 --resume 继续）")
    finally:
        await runtime.stop()


async def amain(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    context = AppContext.create(settings)
    try:
        await run(args, context)
    finally:
        await context.aclose()


def main_cli() -> None:
    asyncio.run(amain())


if __name__ == "__main__":
    main_cli()
