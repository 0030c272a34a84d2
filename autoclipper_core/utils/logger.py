import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

from loguru import logger

from autoclipper_core.config_manager import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logger(log_dir: str = "logs", cfg: Optional[LoggingConfig] = None) -> Any:
    """
    Configures loguru sinks from the ``logging`` settings section.

    Console output honours ``cfg.level``. The rotating text log always keeps
    DEBUG so parse failures and retries can be diagnosed after the fact;
    ``error.log`` and, when ``cfg.json_logs`` is set, a serialized copy for log
    shippers are written alongside it.
    """
    cfg = cfg or LoggingConfig()
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=cfg.level.upper())

    files = {"autoclipper.log": {"level": "DEBUG", "compression": "zip"}, "error.log": {"level": "ERROR"}}
    if cfg.json_logs:
        files["autoclipper.json.log"] = {"level": "INFO", "serialize": True}
    for filename, options in files.items():
        logger.add(log_path / filename, rotation=cfg.rotation, retention=cfg.retention, **options)

    logger.info(f"Logger initialized at {cfg.level.upper()}. Logs writing to {log_path.absolute()}")
    return logger


class InterceptHandler(logging.Handler):
    """Routes stdlib logging records (uvicorn, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_std_logging(names: Iterable[str] = ("uvicorn", "uvicorn.access", "uvicorn.error")) -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in names:
        logging.getLogger(name).handlers = [InterceptHandler()]
