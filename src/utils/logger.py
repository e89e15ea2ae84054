# src/utils/logger.py

import sys
from pathlib import Path
from loguru import logger


def setup_logging(log_level: str = "INFO", base_dir: Path = Path(".")):
    """
    Central loguru setup for the interview engine.
    """
    logger.remove()  # drop previously installed handlers

    log_dir = base_dir / "logs"
    log_dir.mkdir(exist_ok=True)

    # Console formatter
    def console_format(record):
        emoji = {"INFO": "ℹ️", "SUCCESS": "✅", "WARNING": "⚠️", "ERROR": "❌"}.get(record["level"].name, "📝")
        time_str = record["time"].strftime("%H:%M:%S")
        session = record["extra"].get("session_id")
        prefix = f"[{session}] " if session else ""
        return (
            f"<green>{time_str}</green> | {emoji} <level>{record['level'].name: <8}</level> | "
            f"<cyan>{record['name'].split('.')[-1]}</cyan>:<cyan>{record['function']}</cyan> - "
            f"{prefix}<level>{{message}}</level>\n"
        )

    # Console (coloured and short)
    logger.add(sys.stderr, format=console_format, level=log_level.upper(), colorize=True)

    # Main log file (detailed)
    logger.add(
        log_dir / "interview_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="1 day",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
    )

    # Error log file (errors only)
    logger.add(
        log_dir / "errors.log",
        level="ERROR",
        rotation="1 week",
        backtrace=True,  # keep the full traceback for errors
        diagnose=True,
    )

    logger.success("Logging configured.")
