import argparse
import asyncio
import os
import signal
import sys
import threading
from dataclasses import replace
from typing import List, Optional, TextIO

from dotenv import load_dotenv

from core.commands import HELP_TEXT, QuitCommand, UnknownCommand, parse_command
from core.publisher import TallyPublisher
from core.session import SessionTally
from runtime.version import as_string
from services.discord.webhook import DiscordWebhookSink
from services.local.sink import LocalSink
from shared.config.publisher import (
    SINK_WEBHOOK,
    ConfigError,
    PublisherConfig,
    SinkConfig,
)
from shared.logging.logger import get_logger
from shared.publishing.base import TallySink
from shared.publishing.render import render_tally_text

log = get_logger("core.app")

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2

WEBHOOK_ENV = "SESSIONTALLY_WEBHOOK_URL"


# ----------------------------------------------------------------------
# CONFIGURATION
# ----------------------------------------------------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="session-tally",
        description=(
            "Track the running score of a play session and publish the "
            "tally to a Discord webhook."
        ),
    )
    parser.add_argument(
        "-w",
        "--webhook",
        default=None,
        help=f"Discord webhook URL (default: ${WEBHOOK_ENV})",
    )
    parser.add_argument(
        "-n",
        "--no-discord",
        action="store_true",
        help="Run without Discord and print the tally to stdout",
    )
    parser.add_argument(
        "--debounce",
        type=float,
        default=None,
        help="Minimum seconds between two publish attempts (default: 2)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Retries per snapshot before it is dropped (default: 5)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PublisherConfig:
    """
    Resolve CLI arguments on top of environment defaults.
    Raises ConfigError for anything the runtime cannot start with.
    """
    base = PublisherConfig.from_env()
    bot_name = base.sink.bot_name

    if args.no_discord:
        sink = replace(SinkConfig.local(), bot_name=bot_name)
    else:
        url = args.webhook or os.getenv(WEBHOOK_ENV)
        if not url:
            raise ConfigError(
                "You must either provide a webhook with --webhook or run with --no-discord"
            )
        sink = SinkConfig.for_webhook(url, bot_name=bot_name)

    overrides = {}
    if args.debounce is not None:
        overrides["debounce_interval"] = args.debounce
    if args.max_retries is not None:
        overrides["max_retries"] = args.max_retries

    return replace(base, sink=sink, **overrides)


def build_sink(config: PublisherConfig, *, output: Optional[TextIO] = None) -> TallySink:
    if config.sink.kind == SINK_WEBHOOK:
        return DiscordWebhookSink(
            config.sink.webhook,
            username=config.sink.bot_name,
            timeout=config.attempt_timeout,
        )
    return LocalSink(output)


# ----------------------------------------------------------------------
# INGESTION
# ----------------------------------------------------------------------

def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    """
    Feed stdin lines into the loop from a daemon thread; None marks EOF.
    """

    def _reader():
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, None)
        except RuntimeError:
            # Loop already closed during shutdown.
            return

    threading.Thread(target=_reader, name="stdin-reader", daemon=True).start()


async def ingest_commands(
    tally: SessionTally,
    publisher: TallyPublisher,
    lines: asyncio.Queue,
    stop_event: asyncio.Event,
) -> None:
    """
    Apply operator commands in arrival order and hand every snapshot to the
    publisher. Never waits on network I/O.
    """
    while not stop_event.is_set():
        line = await lines.get()
        if line is None:
            log.info("Command input closed")
            break

        try:
            event = parse_command(line)
        except QuitCommand:
            log.info("Quit requested by operator")
            break
        except UnknownCommand as e:
            log.warning(f"{e}. {HELP_TEXT}")
            continue

        if event is None:
            continue

        snapshot = tally.apply(event)
        publisher.submit(snapshot)
        log.info(f"[{snapshot.epoch}:{snapshot.sequence}] {render_tally_text(snapshot)}")

    stop_event.set()


# ----------------------------------------------------------------------
# MAIN
# ----------------------------------------------------------------------

async def main(
    config: PublisherConfig,
    stop_event: asyncio.Event,
    *,
    lines: Optional[asyncio.Queue] = None,
    output: Optional[TextIO] = None,
) -> int:
    log.info(f"{as_string()} booting")

    # --------------------------------------------------
    # CORE SYSTEMS
    # --------------------------------------------------
    tally = SessionTally()
    publisher = TallyPublisher(build_sink(config, output=output), config)
    await publisher.start()

    log.info(f"Publishing to {config.sink.kind} sink")

    # Announce the session with the initial 0-0 tally.
    publisher.submit(tally.current())

    # --------------------------------------------------
    # COMMAND INGESTION
    # --------------------------------------------------
    if lines is None:
        lines = asyncio.Queue()
        _start_stdin_reader(asyncio.get_running_loop(), lines)
        log.info(HELP_TEXT)

    ingest_task = asyncio.create_task(
        ingest_commands(tally, publisher, lines, stop_event)
    )

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    await stop_event.wait()

    log.info("Shutdown initiated")

    if not ingest_task.done():
        ingest_task.cancel()
    await asyncio.gather(ingest_task, return_exceptions=True)

    await publisher.shutdown()

    final = tally.current()
    log.info(f"Session ended at {render_tally_text(final)}")
    return EXIT_OK


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Ctrl+C handler using signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        loop.call_soon_threadsafe(stop_event.set)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handler)
        except (ValueError, OSError) as e:
            log.debug(f"Signal handler for {sig} not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        log.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    stop_event = asyncio.Event()
    _install_signal_handlers(loop, stop_event)

    exit_code = EXIT_OK
    try:
        exit_code = loop.run_until_complete(main(config, stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received, shutdown initiated")

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(run())
