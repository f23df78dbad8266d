import argparse
import asyncio
import logging
import os
import signal

from .config import DEFAULT_BIND, RelayConfig, parse_bind
from .server import main_loop


async def _run(config: RelayConfig) -> None:
    stop = asyncio.Event()

    # Install signal handlers when supported
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows may not support SIGTERM
            pass

    logging.info("Starting relay on %s:%s", config.host, config.port)
    await main_loop(config, stop)


def build_parser() -> argparse.ArgumentParser:
    env = RelayConfig.from_env()
    parser = argparse.ArgumentParser(description="Yjs document and presence relay")
    parser.add_argument(
        "--bind",
        default=os.getenv("BIND", DEFAULT_BIND),
        help="Bind address ws://host:port, host:port or port",
    )
    parser.add_argument(
        "--ping-interval",
        type=float,
        default=env.ping_interval or 0,
        help="Seconds between websocket pings (0 disables)",
    )
    parser.add_argument(
        "--ping-timeout",
        type=float,
        default=env.ping_timeout or 0,
        help="Seconds to wait for a pong (0 disables)",
    )
    parser.add_argument(
        "--max-frame-bytes",
        type=int,
        default=env.max_frame_bytes,
        help="Largest accepted frame",
    )
    parser.add_argument(
        "--send-queue-size",
        type=int,
        default=env.send_queue_size,
        help="Frames buffered per client before it is dropped as too slow",
    )
    parser.add_argument(
        "--status-interval",
        type=float,
        default=env.status_interval,
        help="Seconds between status log lines (0 disables)",
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Start with empty text containers",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="DEBUG, INFO, WARNING, ...",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> RelayConfig:
    host, port = parse_bind(args.bind)
    return RelayConfig(
        host=host,
        port=port,
        ping_interval=args.ping_interval or None,
        ping_timeout=args.ping_timeout or None,
        max_frame_bytes=args.max_frame_bytes,
        send_queue_size=args.send_queue_size,
        status_interval=args.status_interval,
        seed=not args.no_seed,
    )


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    config = config_from_args(args)
    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        logging.info("Shutting down")


if __name__ == "__main__":
    main()
