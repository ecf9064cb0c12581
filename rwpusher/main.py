"""Main entry point for the demo service with its remote-write pusher."""
import argparse
import logging
import sys
import signal

from prometheus_client import CollectorRegistry
from pythonjsonlogger.json import JsonFormatter

from rwpusher.config import load_config
from rwpusher.app import DemoService
from rwpusher.client import RemoteWriteClient
from rwpusher.metrics import PusherMetrics, ServiceMetrics
from rwpusher.registry import RegistryGatherer
from rwpusher.scheduler import PushScheduler

LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for the configured log format; JSON records are one object per line."""
    if log_format == "json":
        return JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt=LOG_DATEFMT,
            rename_fields={"asctime": "time", "levelname": "level", "name": "logger"}
        )
    return logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt=LOG_DATEFMT
    )


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(log_format))
    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_bind(bind: str):
    """Split a "host:port" socket address; an empty host binds all interfaces."""
    host, sep, port = bind.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid bind address: {bind!r}")
    return host or "0.0.0.0", int(port)


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Example service that pushes its metrics via Prometheus remote write"
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--bind",
        default=None,
        help="The socket to bind to, e.g. :8080"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
        if args.bind:
            host, port = parse_bind(args.bind)
            config.server.bind_address = host
            config.server.port = port
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    rw_config = config.remote_write
    logger.info(f"Configuration loaded from: {args.config or '<defaults>'}")
    logger.info(f"Remote write endpoint: {rw_config.url}")
    logger.info(f"Push interval: {rw_config.push_interval_s}s, timeout: {rw_config.timeout_s}s")

    registry = CollectorRegistry()
    service_metrics = ServiceMetrics(registry)
    service = DemoService(service_metrics)

    pusher = None
    if rw_config.enabled:
        pusher = PushScheduler(
            RegistryGatherer(registry),
            RemoteWriteClient.from_config(rw_config),
            interval_s=rw_config.push_interval_s,
            self_metrics=PusherMetrics(registry)
        )
        pusher.start()
        logger.info("Remote write pusher started")
    else:
        logger.info("Remote write pusher disabled")

    def shutdown():
        if pusher is not None and not pusher.stopped:
            pusher.stop(timeout=rw_config.timeout_s)
            pusher.client.close()

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Run the demo service (blocking)
    logger.info(f"Starting server on {config.server.bind_address}:{config.server.port}")
    try:
        service.run(
            host=config.server.bind_address,
            port=config.server.port
        )
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        shutdown()
        sys.exit(1)

    shutdown()


if __name__ == "__main__":
    main()
