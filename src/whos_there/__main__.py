import argparse
from dataclasses import dataclass
from pathlib import Path
import signal
import sys
import tomllib
from typing import TYPE_CHECKING, Any, NoReturn, TypedDict, cast

from whos_there.camera.device import PhotoOptions
from whos_there.camera.opencv_camera import OpenCVCamera
from whos_there.daemon.activity_monitor import ActivityMonitor, MonitorConfig
from whos_there.daemon.capture_controller import CaptureController
from whos_there.daemon.main_context import QtMainContext
from whos_there.file_storage.capture_paths import (
    DEFAULT_CAPTURE_DIRECTORY,
    DEFAULT_TEMP_DIRECTORY,
    CapturePathBuilder,
)
from whos_there.input_events.errors import EventTapPermissionError
from whos_there.logging import get_default_log_dir, get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from whos_there.input_events.data import ActivityEvent
    from whos_there.input_events.event_tap import QuartzEventTap

logger = get_logger("whos_there")

# sysexits.h EX_NOPERM
EXIT_PERMISSION_DENIED = 77
EXIT_UNSUPPORTED_PLATFORM = 69


class MonitorSectionConfig(TypedDict, total=False):
    idle_threshold: float
    check_interval: float
    capture_delay: float


class StorageSectionConfig(TypedDict, total=False):
    output: str
    temp_dir: str


class CameraSectionConfig(TypedDict, total=False):
    index: int
    jpeg_quality: int


class GeneralSectionConfig(TypedDict, total=False):
    debug: bool


class FileConfig(TypedDict):
    monitor: MonitorSectionConfig
    storage: StorageSectionConfig
    camera: CameraSectionConfig
    general: GeneralSectionConfig


class CliArgs(TypedDict):
    idle_threshold: float | None
    check_interval: float | None
    capture_delay: float | None
    output: Path | None
    temp_dir: Path | None
    camera_index: int | None
    debug: bool
    config: Path


@dataclass(frozen=True)
class Settings:
    monitor: MonitorConfig
    capture_directory: Path
    temp_directory: Path
    camera_index: int = 0
    jpeg_quality: int = 90
    debug: bool = False


def parse_args(argv: "Sequence[str] | None" = None) -> CliArgs:
    """Parse command-line arguments.

    Options left unset are None so that the config file can supply them.

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="whos-there",
        description="WhosThere - photograph whoever uses this Mac after it was left idle",
    )

    parser.add_argument(
        "--idle-threshold",
        type=float,
        default=None,
        help="Seconds without input before the machine counts as idle (default: 10)",
    )

    parser.add_argument(
        "--check-interval",
        type=float,
        default=None,
        help="Seconds between idle checks (default: 5)",
    )

    parser.add_argument(
        "--capture-delay",
        type=float,
        default=None,
        help="Seconds to wait after activity resumes before taking the photo (default: 0.5)",
    )

    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help=f"Directory for captured photos (default: ./{DEFAULT_CAPTURE_DIRECTORY})",
    )

    parser.add_argument(
        "--temp-dir",
        type=Path,
        default=None,
        help=f"Scratch directory that also receives each photo (default: {DEFAULT_TEMP_DIRECTORY})",
    )

    parser.add_argument(
        "--camera-index",
        type=int,
        default=None,
        help="OpenCV camera index to fall back to (default: 0)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose console output and log file)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path.home() / ".config" / "whos-there" / "config.toml",
        help="Path to configuration file (default: ~/.config/whos-there/config.toml)",
    )

    parsed = parser.parse_args(argv)

    return cast(
        "CliArgs",
        {
            "idle_threshold": parsed.idle_threshold,
            "check_interval": parsed.check_interval,
            "capture_delay": parsed.capture_delay,
            "output": parsed.output,
            "temp_dir": parsed.temp_dir,
            "camera_index": parsed.camera_index,
            "debug": parsed.debug,
            "config": parsed.config,
        },
    )


def load_config(config_path: Path) -> FileConfig:
    """Load configuration from TOML file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Dictionary containing configuration values.
    """
    config: FileConfig = {"monitor": {}, "storage": {}, "camera": {}, "general": {}}

    config_path = config_path.expanduser()
    if not config_path.exists():
        logger.debug("Config file not found: %s", config_path)
        return config

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
        logger.info("Loaded configuration from: %s", config_path)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Failed to load config file: %s", e)
        return config

    for section in ("monitor", "storage", "camera", "general"):
        if section in raw_config and isinstance(raw_config[section], dict):
            config[section] = raw_config[section]  # type: ignore[literal-required]

    return config


def merge_config(cli_args: CliArgs, file_config: FileConfig) -> Settings:
    """Merge CLI arguments with file configuration.

    An option given on the command line wins over the config file, which wins
    over the built-in default.

    Args:
        cli_args: Parsed CLI arguments.
        file_config: Configuration loaded from file.

    Returns:
        The effective settings.

    Raises:
        ValueError: If a timing value is out of range.
        TypeError: If a config file value has the wrong type.
    """
    monitor_section = file_config["monitor"]
    storage_section = file_config["storage"]
    camera_section = file_config["camera"]
    general_section = file_config["general"]
    defaults = MonitorConfig()

    monitor = MonitorConfig(
        idle_threshold_seconds=float(
            _first_set(
                cli_args["idle_threshold"],
                monitor_section.get("idle_threshold"),
                defaults.idle_threshold_seconds,
            )
        ),
        idle_check_interval_seconds=float(
            _first_set(
                cli_args["check_interval"],
                monitor_section.get("check_interval"),
                defaults.idle_check_interval_seconds,
            )
        ),
        capture_delay_seconds=float(
            _first_set(
                cli_args["capture_delay"],
                monitor_section.get("capture_delay"),
                defaults.capture_delay_seconds,
            )
        ),
    )

    capture_directory = Path(
        _first_set(
            cli_args["output"], storage_section.get("output"), DEFAULT_CAPTURE_DIRECTORY
        )
    )
    temp_directory = Path(
        _first_set(
            cli_args["temp_dir"], storage_section.get("temp_dir"), DEFAULT_TEMP_DIRECTORY
        )
    )

    return Settings(
        monitor=monitor,
        capture_directory=capture_directory.expanduser(),
        temp_directory=temp_directory.expanduser(),
        camera_index=int(_first_set(cli_args["camera_index"], camera_section.get("index"), 0)),
        jpeg_quality=int(camera_section.get("jpeg_quality", 90)),
        debug=cli_args["debug"] or bool(general_section.get("debug", False)),
    )


def _first_set(*values: Any) -> Any:  # noqa: ANN401
    return next(value for value in values if value is not None)


def configure_logging(*, debug_mode: bool, log_dir: Path | None = None) -> None:
    """Configure logging based on debug mode.

    Args:
        debug_mode: Whether debug mode is enabled.
        log_dir: Optional custom log directory.
    """
    if not debug_mode:
        log_dir = None
    elif log_dir is None:
        log_dir = get_default_log_dir()

    setup_logging(log_dir, debug=debug_mode)


def create_components(
    settings: Settings, main_context: QtMainContext
) -> tuple[ActivityMonitor, CaptureController]:
    """Create the capture controller and the activity monitor.

    Args:
        settings: Effective settings.
        main_context: Context that owns timers and state transitions.

    Returns:
        Tuple of (activity_monitor, capture_controller).
    """
    controller = CaptureController(
        camera=OpenCVCamera(device_index=settings.camera_index),
        main_context=main_context,
        photo_options=PhotoOptions(jpeg_quality=settings.jpeg_quality),
    )
    monitor = ActivityMonitor(
        config=settings.monitor,
        capture_controller=controller,
        main_context=main_context,
        path_builder=CapturePathBuilder(
            settings.capture_directory, settings.temp_directory
        ),
    )
    return monitor, controller


def create_event_source(
    on_activity: "Callable[[ActivityEvent], None]",
) -> "QuartzEventTap":
    """Create the system-wide input event source.

    Imported here because pyobjc is only available on macOS.
    """
    from whos_there.input_events.event_tap import QuartzEventTap  # noqa: PLC0415

    return QuartzEventTap(on_activity)


def main(argv: "Sequence[str] | None" = None) -> NoReturn:
    """Main entry point for the application."""
    args = parse_args(argv)

    file_config = load_config(args["config"])

    try:
        settings = merge_config(args, file_config)
    except (TypeError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)

    configure_logging(debug_mode=settings.debug)

    logger.info("Starting WhosThere")
    logger.info("Idle threshold: %.1f seconds", settings.monitor.idle_threshold_seconds)
    logger.info("Idle check interval: %.1f seconds", settings.monitor.idle_check_interval_seconds)
    logger.info("Debug mode: %s", "enabled" if settings.debug else "disabled")

    main_context = QtMainContext()
    monitor, controller = create_components(settings, main_context)

    try:
        event_source = create_event_source(monitor.handle_event)
        event_source.start()
    except EventTapPermissionError as e:
        logger.error("Cannot monitor activity: %s", e)
        controller.shutdown()
        sys.exit(EXIT_PERMISSION_DENIED)
    except ImportError as e:
        logger.error("Activity monitoring requires macOS with pyobjc installed: %s", e)
        controller.shutdown()
        sys.exit(EXIT_UNSUPPORTED_PLATFORM)

    def handle_shutdown(signum: int, frame: object) -> None:  # noqa: ARG001
        sig_name = signal.Signals(signum).name
        logger.info("Received %s signal, shutting down gracefully...", sig_name)
        main_context.quit()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    # Python signal handlers only run when the interpreter gets control back
    # from the Qt event loop.
    main_context.call_repeating(0.5, lambda: None)

    monitor.start()
    logger.info("WhosThere is running. Press Ctrl+C to stop.")

    exit_code = 0
    try:
        main_context.run()
    except Exception as e:  # noqa: BLE001
        logger.error("Unexpected error: %s", e)
        exit_code = 1

    event_source.stop()
    monitor.stop()
    controller.shutdown()
    logger.info("Shutdown complete")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
