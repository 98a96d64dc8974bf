"""Logging configuration for I Spy Road Trip."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logger(
    verbose: bool = False,
    save_to_file: bool = False,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure logging for a play session.

    The console shows only the game's own records (the conversation and
    anything that went wrong); provider libraries stay quiet there. With
    ``save_to_file`` the full debug log of the drive goes to a timestamped
    file under ``data/sessions``.

    Args:
        verbose: If True, show debug records on the console
        save_to_file: If True, also log to file
        log_dir: Directory for session logs

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )
    simple_formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(detailed_formatter if verbose else simple_formatter)
    console_handler.addFilter(lambda record: record.name.startswith("roadtrip"))
    logger.addHandler(console_handler)

    if save_to_file:
        log_dir = log_dir or Path("data/sessions")
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create log directory {log_dir}: {e}")
            return logger

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"session_{timestamp}.log"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        logger.addHandler(file_handler)
        logging.getLogger("roadtrip").info(f"Logging to file: {log_file}")

    return logger
