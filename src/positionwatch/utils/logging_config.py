"""Logging configuration: standard library only, file plus console."""

import logging
from pathlib import Path


def setup_logging(level: str = "INFO", log_file: str = "logs/positionwatch.log") -> None:
    """Configure root logging for the scanner, monitor and API.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file (default: logs/positionwatch.log)
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
        force=True,
    )

    # Chain and HTTP client libraries are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)

    logging.info(f"Logging configured: level={level}, file={log_file}")
