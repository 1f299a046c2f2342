from datetime import datetime
import logging
from pathlib import Path
import sys

PACKAGE_LOGGER = "whos_there"

COMPONENT_LOGGERS: dict[str, logging.Logger] = {}


def get_default_log_dir() -> Path:
    """Return the default log directory: ~/.logs/whos-there/"""
    return Path.home() / ".logs" / "whos-there"


def get_logger(name: str, log_dir: Path | None = None) -> logging.Logger:
    if name in COMPONENT_LOGGERS:
        return COMPONENT_LOGGERS[name]

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if name.startswith(f"{PACKAGE_LOGGER}."):
        # Component records reach the console and log file through the
        # package logger, so they carry no handlers of their own.
        get_logger(PACKAGE_LOGGER, log_dir)
        COMPONENT_LOGGERS[name] = logger
        return logger

    log_format = "%(asctime)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    if log_dir is not None:
        log_dir = log_dir.expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now().strftime("%Y-%m-%d")
        log_file = log_dir / f"whos-there-{date_str}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))

        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))

    logger.addHandler(console_handler)

    COMPONENT_LOGGERS[name] = logger
    return logger


def setup_logging(
    log_dir: Path | None = None, *, debug: bool = False
) -> dict[str, logging.Logger]:
    """Configure the component loggers used across the daemon.

    Loggers created earlier at import time are reset so that the file handler
    and console level apply to them too.
    """
    loggers: dict[str, logging.Logger] = {}

    components = [
        PACKAGE_LOGGER,
        "whos_there.daemon",
        "whos_there.camera",
        "whos_there.input_events",
        "whos_there.file_storage",
    ]

    for component in components:
        existing = COMPONENT_LOGGERS.pop(component, None)
        if existing is not None:
            for handler in existing.handlers[:]:
                handler.close()
                existing.removeHandler(handler)

    for component in components:
        logger = get_logger(component, log_dir)
        if debug:
            for handler in logger.handlers:
                handler.setLevel(logging.DEBUG)
        loggers[component] = logger

    return loggers
