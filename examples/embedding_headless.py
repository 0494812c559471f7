#!/usr/bin/env python3
"""
Example: Headless Watch Session
Shows how to embed WatchController in another asyncio program.

This example demonstrates:
- Running a watch session without the CLI
- Plugging in a custom notifier to receive status lines
- Stopping the session after a fixed time
"""

import asyncio
import sys

from appwatch import PushOptions, WatchController


class PrintNotifier:
    """Prints every status line with a prefix."""

    def info(self, msg: str) -> None:
        print(f"[appwatch] {msg}")

    def warning(self, msg: str) -> None:
        print(f"[appwatch] warning: {msg}")

    def error(self, msg: str) -> None:
        print(f"[appwatch] error: {msg}", file=sys.stderr)


async def main(app_path: str, seconds: float) -> None:
    controller = WatchController(
        app_path,
        PushOptions(no_browser=True, use_local_frontend=True),
        notifier=PrintNotifier(),
    )

    session = asyncio.create_task(controller.run())
    try:
        await asyncio.wait_for(asyncio.shield(session), timeout=seconds)
    except asyncio.TimeoutError:
        print(f"Stopping after {seconds:.0f}s")
    finally:
        session.cancel()
        try:
            await session
        except asyncio.CancelledError:
            pass


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else "."
    asyncio.run(main(path, seconds=60))
