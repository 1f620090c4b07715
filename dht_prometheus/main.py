import argparse
import logging
import signal
import sys
import threading

from . import __version__
from .collector import DHTCollector
from .config import Config, ConfigError, load_config
from .log import get_logger, parse_level, setup_logging
from .registry import SensorRegistry
from .sensor import SensorInitError, create_sensor
from .server import make_server

logger = get_logger("main")


def build_registry(config: Config) -> SensorRegistry:
    """
    Create a reader and collector for every configured sensor.

    Raises:
        SensorInitError: If a sensor cannot be initialized and
            skip_failed_sensors is off
        ValueError: If two collectors expose the same time series
    """
    registry = SensorRegistry(
        process_metrics=config.process_metrics,
        logger=get_logger("registry"),
    )
    for sensor_config in config.sensors:
        try:
            sensor = create_sensor(
                sensor_config,
                mock=config.mock_hardware,
                logger=get_logger(f"sensor.{sensor_config.name}"),
            )
        except SensorInitError as e:
            if not config.skip_failed_sensors:
                registry.close()
                raise
            logger.error(f"Skipping sensor '{sensor_config.name}': {e}")
            continue
        registry.register(DHTCollector(sensor, logger=get_logger("collector")))

    logger.info(f"Initialized {len(registry.collectors)} sensor(s)")
    return registry


def print_summary(config: Config) -> None:
    print(f"Configuration file: {config.path}")
    print(f"  Listen: {config.listen_address or '*'}:{config.listen_port}")
    print(f"  Log level: {config.log_level}")
    print(f"  Mock hardware: {'yes' if config.mock_hardware else 'no'}")
    print(f"  Sensors: {len(config.sensors)}")
    for sensor in config.sensors:
        print(
            f"    - {sensor.name}: {sensor.model} on {sensor.gpio}, "
            f"{sensor.temperature_unit.value}, max_retries={sensor.max_retries}"
        )
    for warning in config.warnings():
        print(f"  Warning: {warning}")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dht-prometheus-exporter",
        description="Prometheus exporter for DHT temperature and humidity sensors",
    )
    parser.add_argument(
        "-c", "--config",
        metavar="PATH",
        help="Configuration file (default: search /etc, $HOME and the working directory)",
    )
    parser.add_argument("--log-level", metavar="LEVEL", help="Override the configured log level")
    parser.add_argument("-p", "--port", type=int, help="Override the configured listen port")
    parser.add_argument("--mock", action="store_true", help="Use mock sensors instead of hardware")
    parser.add_argument("--validate", action="store_true", help="Validate configuration and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(logging.INFO)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.port:
        config.listen_port = args.port
    if args.mock:
        config.mock_hardware = True

    if args.validate:
        print_summary(config)
        return 0

    try:
        setup_logging(parse_level(config.log_level))
    except ValueError as e:
        setup_logging(logging.INFO)
        logger.warning(f"Failed to set log level, using info: {e}")

    try:
        registry = build_registry(config)
    except (SensorInitError, ValueError) as e:
        logger.error(f"Failed to set up sensors: {e}")
        return 1

    try:
        server = make_server(
            registry,
            config.listen_address,
            config.listen_port,
            logger=get_logger("server"),
        )
    except OSError as e:
        logger.error(f"Failed to listen on port {config.listen_port}: {e}")
        registry.close()
        return 1

    def shutdown(signum, frame):
        logger.info("Server is shutting down...")
        # shutdown() blocks until serve_forever() returns, which runs here.
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(f"Starting HTTP server on {config.listen_address or '*'}:{config.listen_port}")
    try:
        server.serve_forever()
    finally:
        server.server_close()
        registry.close()
    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
