# duplex_assistant/__main__.py
"""
Command-line host for the duplex assistant.

Interactive mode reads lines from the terminal: a typed line is sent as a
query, an empty line starts listening, `ask <question>` runs a question and
answer turn. With --ipc the assistant is driven by a parent process through
JSON lines on stdin/stdout instead.
"""

import argparse
import asyncio
import logging
import signal
import sys

from duplex_assistant.audio import Microphone, Player
from duplex_assistant.commands import Commands
from duplex_assistant.config import Config, setup_logging
from duplex_assistant.host_channel import NullHostChannel, StdioHostChannel
from duplex_assistant.orchestrator import SessionOrchestrator
from duplex_assistant.services.openai_service import OpenAIAssistantService
from duplex_assistant.state import AssistantStore

logger = logging.getLogger(__name__)

UI_EVENTS = ("ready", "waiting", "loading", "new-text", "responseHtml", "error")


def build_orchestrator(config: Config, ipc: bool = False) -> SessionOrchestrator:
    store = AssistantStore(config.transcript_file)
    store.load()
    host = StdioHostChannel() if ipc else NullHostChannel()
    return SessionOrchestrator(
        config,
        OpenAIAssistantService(config),
        Player(config.sample_rate_out, config.ping_file),
        Microphone(config.sample_rate_in, config.block_duration),
        commands=Commands.from_file(config.commands_file),
        store=store,
        host=host,
    )


def forward_events(orchestrator: SessionOrchestrator) -> None:
    """Mirror UI events and transcript entries to the host process"""
    host = orchestrator.host
    for event in UI_EVENTS:
        def forward(*args, name=event):
            payload = str(args[0]) if args else None
            host.send(name, payload)
        orchestrator.on(event, forward)
    orchestrator.store.subscribe_messages(lambda message: host.send("message", message.to_dict()))
    orchestrator.store.subscribe_buffer(
        lambda results: host.send("speech-text-buffer", [r.transcript for r in results])
    )


def print_events(orchestrator: SessionOrchestrator) -> None:
    def show(message):
        speaker = "🤖 Assistant" if message.type.value == "incoming" else "👤 You"
        print(f"{speaker}: {message.text}")

    orchestrator.store.subscribe_messages(show)
    orchestrator.on("loading", lambda: print("🎤 Listening..."))
    orchestrator.on("error", lambda error: print(f"❌ Error: {error}"))


async def interactive_loop(orchestrator: SessionOrchestrator, stopping: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    print("\n" + "=" * 60)
    print("💡 Type a question, or press Enter to talk")
    print("💡 'ask <question>' asks you something, 'mini' toggles mini mode")
    print("💡 Type 'exit' or 'quit' to quit")
    print("=" * 60 + "\n")

    while not stopping.is_set():
        try:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            text = line.strip()
            if text.lower() in ("exit", "quit", "goodbye"):
                break
            if text.lower() == "mini":
                orchestrator.set_mini_mode(not orchestrator.mini_mode)
                continue
            if text.lower() == "stop":
                orchestrator.force_stop()
                continue
            if text.lower().startswith("ask "):
                answer = await orchestrator.ask(text[4:].strip(), timeout=60)
                print(f"✅ Answer: {answer}")
                continue
            orchestrator.assist(text or None)
        except asyncio.TimeoutError:
            print("⌛ No answer received.")
        except Exception as e:
            logger.error(f"Error in CLI loop: {e}")
            print(f"❌ Error: {e}")


async def run(args: argparse.Namespace) -> None:
    config = Config.from_env()
    setup_logging(config, console=not args.ipc)
    logger.info("Duplex assistant starting...")

    orchestrator = build_orchestrator(config, ipc=args.ipc)
    stopping = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopping.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    await orchestrator.start()
    if args.mini:
        orchestrator.set_mini_mode(True)

    try:
        if args.ipc:
            forward_events(orchestrator)
            serve = asyncio.ensure_future(orchestrator.host.serve())
            halt = asyncio.ensure_future(stopping.wait())
            await asyncio.wait({serve, halt}, return_when=asyncio.FIRST_COMPLETED)
            for task in (serve, halt):
                task.cancel()
        else:
            print_events(orchestrator)
            await interactive_loop(orchestrator, stopping)
    finally:
        orchestrator.shutdown()
        logger.info("Shutdown complete")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="duplex-assistant", description="Voice assistant host")
    parser.add_argument("--ipc", action="store_true",
                        help="drive the assistant over JSON lines on stdin/stdout")
    parser.add_argument("--mini", action="store_true", help="start in mini mode")
    args = parser.parse_args(argv)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")


if __name__ == "__main__":
    main()
