"""Logging configuration for the swarmctl package."""
import logging
import logging.handlers
import time
from pathlib import Path
from typing import List, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
DEFAULT_LOG_DIR = "logs"
LOG_RETENTION_DAYS = 7
MAX_LOG_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

# 1=ERROR 2=WARN 3=INFO 4=DEBUG
VERBOSITY_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}

NOISY_LOGGERS = ('paramiko', 'urllib3')

logger = logging.getLogger("swarm.logging")


class LazyRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotating file handler that creates its directory on first write."""

    def __init__(self, filename, **kwargs):
        kwargs.setdefault("delay", True)
        super().__init__(filename, **kwargs)

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


def level_for(verbosity: int) -> int:
    """Map a 1-4 verbosity to a logging level, clamping out-of-range values."""
    return VERBOSITY_LEVELS[min(max(int(verbosity), 1), 4)]


def setup_logging(
    verbosity: int = 3,
    log_dir: Optional[Union[str, Path]] = DEFAULT_LOG_DIR,
    console: Optional[Console] = None,
) -> Optional[Path]:
    """Configure console and file logging for a run.

    Args:
        verbosity: Console verbosity (1=ERROR 2=WARN 3=INFO 4=DEBUG)
        log_dir: Directory for setup.log and errors.log; None disables files
        console: Rich console for the console handler

    Returns:
        The log directory in use, if any
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
        markup=False,
    )
    console_handler.setLevel(level_for(verbosity))
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root.addHandler(console_handler)

    path = None
    if log_dir:
        path = Path(log_dir).expanduser()
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        setup_handler = LazyRotatingFileHandler(
            filename=path / "setup.log",
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8',
        )
        setup_handler.setLevel(logging.DEBUG)
        setup_handler.setFormatter(formatter)
        root.addHandler(setup_handler)

        error_handler = LazyRotatingFileHandler(
            filename=path / "errors.log",
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8',
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)

    # Disable debug logging for noisy libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return path


def cleanup_logs(
    log_dir: Union[str, Path],
    days: int = LOG_RETENTION_DAYS,
    now: Optional[float] = None,
) -> List[Path]:
    """Delete log files older than ``days`` days.

    Returns:
        The files that were removed
    """
    path = Path(log_dir)
    if not path.is_dir():
        return []
    cutoff = (now if now is not None else time.time()) - days * 86400
    removed = []
    for log_file in path.glob("*.log*"):
        if log_file.is_file() and log_file.stat().st_mtime < cutoff:
            log_file.unlink()
            removed.append(log_file)
    if removed:
        logger.debug(f"Removed {len(removed)} log file(s) older than {days} days")
    return removed


def set_console_level(verbosity: int) -> None:
    """Change the console handler level after configuration has been loaded."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(level_for(verbosity))
