from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from keyrelay.core.config import RelayConfig, load_config
from keyrelay.server.runtime import ServerRuntime

log = logging.getLogger("keyrelay.cmd.server")


async def _run(config: RelayConfig) -> None:
    runtime = ServerRuntime(config)
    await runtime.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
    except NotImplementedError:
        pass

    log.info("Server running. Press Ctrl+C to stop.")
    try:
        await stop_event.wait()
    finally:
        await runtime.stop()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Admin/user rendezvous relay for end-to-end encrypted chat")
    parser.add_argument("--config", help="Path to server YAML config")
    parser.add_argument("--port", type=int, help="Override the listen port")
    args = parser.parse_args(argv)

    try:
        config = load_config(Path(args.config) if args.config else None)
        if args.port is not None:
            config = config.model_copy(update={"port": args.port})
    except (OSError, ValueError, ValidationError) as exc:
        sys.exit(f"keyrelay: bad configuration: {exc}")

    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
