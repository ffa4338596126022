from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import platformdirs

LOGGER_NAME = "codegen_cli"
LOG_FILENAME = "codegen-cli.log"


def default_log_dir() -> Path:
    override = os.getenv("CODEGEN_LOG_DIR")
    if override:
        return Path(override)
    return Path(platformdirs.user_log_dir("codegen-cli", appauthor=False))


def configure_logging(
    console_handler: Optional[logging.Handler] = None,
    *,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
) -> Path:
    """Configure the ``codegen_cli`` logger.

    Everything goes to a log file at DEBUG. ``console_handler`` receives
    warnings, or INFO and above when ``verbose``. Calling this again replaces
    the handlers installed by the previous call.

    Returns the path of the log file in use.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for h in list(logger.handlers):
        if getattr(h, "_codegen_handler", False):
            logger.removeHandler(h)
            h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    log_path = (log_dir or default_log_dir()) / LOG_FILENAME
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        # Fall back to a writable location.
        log_path = Path.cwd() / LOG_FILENAME
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(fmt)
    file_handler.setLevel(logging.DEBUG)
    handlers: list[logging.Handler] = [file_handler]

    if console_handler is not None:
        console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
        handlers.append(console_handler)

    for h in handlers:
        setattr(h, "_codegen_handler", True)
        logger.addHandler(h)

    logger.debug("Logging initialized (file=%s)", log_path)
    return log_path
