"""
Entry point: run the reconciliation loop until SIGINT/SIGTERM.

    python -m swapkeeper.main
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from swapkeeper.app import build_coordinator
from swapkeeper.config.config import Settings
from swapkeeper.core.errors import ConfigError, VaultUnavailable
from swapkeeper.infra.logging_cfg import build_logger, log_event

log = build_logger("swapkeeper")


async def main() -> int:
    try:
        cfg = Settings.load()
    except ConfigError as exc:
        log.error(f"Configuration invalid, exiting: {exc}")
        return 1

    build_logger(
        "swapkeeper",
        level=logging.getLevelNamesMapping()[cfg.log_level],
        file_path=cfg.log_file,
    )

    coordinator = build_coordinator(cfg)

    if cfg.metrics_port:
        coordinator.metrics.serve(cfg.metrics_port)
        log_event(log, "metrics_server_started", port=cfg.metrics_port)

    try:
        await coordinator.start()
    except VaultUnavailable as exc:
        log.error(f"Secret vault unavailable at startup: {exc}")
        await coordinator.close()
        return 1

    log_event(
        log,
        "startup",
        vault_backend=cfg.vault_backend,
        interval_sec=cfg.reconcile_interval_sec,
    )
    await coordinator.alerts.alert_startup(vault_backend=cfg.vault_backend)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    reason = "normal"
    try:
        await stop_event.wait()
        log.info("Shutdown signal received, cleaning up...")
    except asyncio.CancelledError:
        reason = "cancelled"
    finally:
        await coordinator.alerts.alert_shutdown(reason, **coordinator.loop.get_stats())
        log.info("Closing loop and connections...")
        await coordinator.close()
        log.info("Shutdown complete")
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nCoordinator stopped by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
