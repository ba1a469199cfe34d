"""
Wallet Signal Processor: main entrypoint.

Single-process asyncio runner that wires the signal pipeline:
    InMemoryEventQueue -> SignalProcessor -> SignalEmitter -> notification publisher

Position events are published onto the event queue by ingestion; the
processor consumes them in batches and reports ack/retry/dead-letter per
message. Notifications go to an in-process queue or to a notifier endpoint
depending on config/notifications.json.

Usage:
    python main.py
"""

from __future__ import annotations

import asyncio
import signal
import sys

from dotenv import load_dotenv

from bot_logging.logger_manager import create_module_log_directories, setup_module_logger
from config.loader import get_config, get_env_var
from config.validate import ConfigValidationError, load_detection_config, validate_all_configs

# ---------------------------------------------------------------------------
# Module logger (logged to logs/ root, no sub-folder)
# ---------------------------------------------------------------------------
_logger = setup_module_logger("main", "main.log", console=True)


# ---------------------------------------------------------------------------
# Startup banner
# ---------------------------------------------------------------------------


def _log_banner(
    db_path: str,
    notification_mode: str,
    time_window_min: int,
    wallet_count: int,
    min_trade_size: str,
    min_leverage: str,
) -> None:
    """Log a concise startup summary."""
    _logger.info("=" * 60)
    _logger.info("Wallet Signal Processor starting")
    _logger.info("=" * 60)
    _logger.info("  db_path         : %s", db_path)
    _logger.info("  notifications   : %s", notification_mode)
    _logger.info("  time_window     : %d min", time_window_min)
    _logger.info("  wallet_count    : %d", wallet_count)
    _logger.info("  min_trade_size  : %s", min_trade_size)
    _logger.info("  min_leverage    : %sx", min_leverage)
    _logger.info("=" * 60)


# ---------------------------------------------------------------------------
# Task done callback: detect unhandled exceptions
# ---------------------------------------------------------------------------


def _task_done_callback(
    task: asyncio.Task[None],
    shutdown_event: asyncio.Event,
) -> None:
    """Called when the processor task finishes (normally or with error)."""
    try:
        exc = task.exception()
    except asyncio.CancelledError:
        _logger.info("Task %s cancelled", task.get_name())
        return

    if exc is not None:
        _logger.critical(
            "Task %s failed with unhandled exception: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Main async entry
# ---------------------------------------------------------------------------


async def _run() -> None:
    """Wire all components and launch the processor task."""
    # ------------------------------------------------------------------
    # 1. Load environment and validate configuration
    # ------------------------------------------------------------------
    load_dotenv()
    create_module_log_directories()

    try:
        validate_all_configs()
        detection = load_detection_config()
    except ConfigValidationError as exc:
        _logger.critical("Config validation failed:\n%s", exc)
        sys.exit(1)

    cfg = get_config()
    storage_cfg = cfg.get_storage_config()
    notifications_cfg = cfg.get_notifications_config()
    transport_cfg = cfg.get_transport_config()

    db_path: str = get_env_var("SIGNAL_DB_PATH", storage_cfg["db_path"], str)
    notification_mode: str = notifications_cfg.get("mode", "queue")

    _log_banner(
        db_path,
        notification_mode,
        detection.time_window_min,
        detection.wallet_count,
        str(detection.min_trade_size),
        str(detection.min_leverage),
    )

    # ------------------------------------------------------------------
    # 2. Initialize shared instances (dependency order)
    # ------------------------------------------------------------------
    from core.cooldown import CooldownGuard
    from core.event_queue import InMemoryEventQueue
    from core.notifications import HttpNotificationPublisher, QueueNotificationPublisher
    from core.signal_emitter import SignalEmitter
    from core.signal_processor import SignalProcessor
    from core.signal_store import SqliteSignalStore

    store = SqliteSignalStore(
        db_path=db_path,
        busy_timeout_seconds=float(storage_cfg.get("busy_timeout_seconds", 5)),
    )

    http_publisher: HttpNotificationPublisher | None = None
    publisher: HttpNotificationPublisher | QueueNotificationPublisher
    if notification_mode == "http":
        http_cfg = notifications_cfg.get("http", {})
        http_publisher = HttpNotificationPublisher(
            url=http_cfg["url"],
            timeout_seconds=float(http_cfg.get("timeout_seconds", 10)),
        )
        publisher = http_publisher
    else:
        publisher = QueueNotificationPublisher()

    event_queue = InMemoryEventQueue(max_attempts=int(transport_cfg["max_attempts"]))
    emitter = SignalEmitter(store, publisher)
    processor = SignalProcessor(store, emitter, cooldown_guard=CooldownGuard(store))

    # ------------------------------------------------------------------
    # 3. Signal handling for graceful shutdown
    # ------------------------------------------------------------------
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        _logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # ------------------------------------------------------------------
    # 4. Launch processor task
    # ------------------------------------------------------------------
    task_processor = asyncio.create_task(
        processor.run(
            event_queue,
            max_batch_size=int(transport_cfg["max_batch_size"]),
            wait_seconds=float(transport_cfg["batch_wait_seconds"]),
        ),
        name="signal_processor",
    )
    task_processor.add_done_callback(
        lambda done_task: _task_done_callback(done_task, shutdown_event)
    )

    _logger.info("Signal processor launched")

    # ------------------------------------------------------------------
    # 5. Wait for shutdown signal, then cancel tasks
    # ------------------------------------------------------------------
    try:
        await shutdown_event.wait()
    finally:
        _logger.info("Shutting down, cancelling tasks")

        processor.stop()
        if not task_processor.done():
            task_processor.cancel()

        results = await asyncio.gather(task_processor, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                _logger.error("Task signal_processor exited with error: %s", result)

        # Cleanup resources
        if http_publisher is not None:
            await http_publisher.close()
        store.close()
        _logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        _logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
