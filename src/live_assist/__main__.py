import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path

from live_assist.config import LiveAssistConfig
from live_assist.log_format import ColoredFormatter

ENV_FILE_PATH = Path.home() / ".config" / "live-assist" / "env"

logger = logging.getLogger("live_assist")


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip().removeprefix("export ").strip()
            if key not in os.environ:
                os.environ[key] = value.strip().strip("'\"")


def _configure_logging(verbose: bool, log_file: str) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    root.addHandler(console)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
        except OSError as exc:
            logger.warning("Cannot open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
            root.addHandler(file_handler)

    if verbose:
        logging.getLogger("websockets").setLevel(logging.INFO)
        logging.getLogger("httpcore").setLevel(logging.INFO)
        logging.getLogger("httpx").setLevel(logging.INFO)
    else:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def main() -> None:
    _load_env_file()
    parser = argparse.ArgumentParser(description="Live transcription assistant that answers spoken questions")
    parser.add_argument("--provider", choices=["gemini", "openai"], help="Live transcription provider")
    parser.add_argument("--answers", choices=["live", "anthropic"], help="Answer engine")
    parser.add_argument("--no-autostart", action="store_true", help="Wait for a start command before recording")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("start", help="Start recording in the running daemon")
    subparsers.add_parser("stop", help="Stop recording in the running daemon")
    subparsers.add_parser("status", help="Query daemon status")

    args = parser.parse_args()

    config = LiveAssistConfig()
    if args.provider:
        config.provider = args.provider
    if args.answers:
        config.answer_engine = args.answers

    if args.command in ("start", "stop", "status"):
        logging.basicConfig(level=logging.WARNING)
        asyncio.run(_run_client_command(args.command, config))
    else:
        _configure_logging(args.verbose, config.log_file)
        asyncio.run(_run_daemon(config, autostart=not args.no_autostart))


async def _run_client_command(command: str, config: LiveAssistConfig) -> None:
    from live_assist.adapters.unix_control import UnixControlClient

    client = UnixControlClient(socket_path=config.socket_path)
    try:
        result = await client.send(command)
    except (ConnectionRefusedError, FileNotFoundError):
        print("live-assist is not running", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2))
    if result.get("status") != "ok":
        sys.exit(1)


async def _handle_control(action: str, assistant) -> dict:
    from live_assist.domain.errors import SessionError

    if action == "start":
        try:
            await assistant.start_recording()
        except SessionError as exc:
            return {"status": "error", "action": action, "error": str(exc)}
    elif action == "stop":
        await assistant.stop_recording()
    elif action != "status":
        return {"status": "error", "action": action, "error": f"unknown action: {action!r}"}
    return {"status": "ok", "action": action, **assistant.status()}


async def _run_daemon(config: LiveAssistConfig, autostart: bool = True) -> None:
    from live_assist.domain.errors import SessionError
    from live_assist.factory import create_assistant
    from live_assist.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logger.error("Critical health check failures, aborting startup")
        sys.exit(1)

    assistant, control = create_assistant(config)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logger.warning("Forced exit")
            os._exit(1)
        shutdown_triggered = True
        logger.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await control.start()

    async def control_loop() -> None:
        async for request in control.requests():
            try:
                request.respond(await _handle_control(request.action, assistant))
            except Exception as exc:
                logger.exception("Control command %r failed", request.action)
                request.respond({"status": "error", "action": request.action, "error": str(exc)})

    control_task = asyncio.create_task(control_loop())

    if autostart:
        try:
            await assistant.start_recording()
        except SessionError as exc:
            logger.error("Could not start recording: %s", exc)

    try:
        await shutdown_event.wait()
    finally:
        control_task.cancel()
        try:
            await asyncio.wait_for(control_task, timeout=1.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        await assistant.aclose()
        await control.stop()


if __name__ == "__main__":
    main()
