"""Append-only audit log for pipeline runs.

Every run writes to its own file under the configured log directory and
mirrors events to the console. Command output is written to the file only.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import IO, List, Optional, Union

from .models import AuditRecord, LogLevel

WARNING_MARKER = 'Warning:'

FILE_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'

PIPELINE_TITLES = {
    'master_install': 'Kubernetes Master Installation Log',
    'node_join': 'Kubernetes Node Join Log',
    'reset': 'Kubernetes Reset Log',
}

_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class _ConsoleFilter(logging.Filter):
    """Drop records flagged as file-only."""

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, 'console', True)


def log_path_for(kind: str, log_dir: Union[str, Path], started: Optional[datetime] = None) -> Path:
    """Return the audit log path for a pipeline kind and start time."""
    started = started or datetime.now()
    return Path(log_dir).expanduser() / f"k8s_{kind}_{started:%Y%m%d%H%M%S}.log"


def scan_warnings(path: Union[str, Path]) -> List[str]:
    """Return the text following every ``Warning:`` marker in a log file."""
    warnings = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            _, marker, text = line.partition(WARNING_MARKER)
            if marker:
                warnings.append(text.strip())
    return warnings


class AuditLog:
    """Durable, append-only record of a pipeline run."""

    def __init__(
        self,
        path: Union[str, Path],
        title: Optional[str] = None,
        echo: bool = True,
        stream: Optional[IO[str]] = None,
    ):
        self.path = Path(path)
        self.records: List[AuditRecord] = []

        self.path.parent.mkdir(parents=True, exist_ok=True)
        if title:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(f"{title} - {datetime.now():%a %b %d %H:%M:%S %Y}\n")
                f.write('=' * 46 + '\n')

        self._logger = logging.getLogger(f"kubeprov.audit.{self.path.stem}.{id(self):x}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        file_handler = logging.FileHandler(self.path, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        self._logger.addHandler(file_handler)

        if echo:
            console_handler = logging.StreamHandler(stream or sys.stdout)
            console_handler.setFormatter(logging.Formatter('%(message)s'))
            console_handler.setLevel(logging.INFO)
            console_handler.addFilter(_ConsoleFilter())
            self._logger.addHandler(console_handler)

    @classmethod
    def for_pipeline(
        cls,
        kind: str,
        log_dir: Union[str, Path],
        started: Optional[datetime] = None,
        **kwargs,
    ) -> 'AuditLog':
        """Open the audit log of a new ``kind`` run started at ``started``."""
        title = PIPELINE_TITLES.get(kind, f"Kubernetes {kind} Log")
        return cls(log_path_for(kind, log_dir, started), title=title, **kwargs)

    def _emit(self, level: LogLevel, message: str) -> None:
        self.records.append(AuditRecord(datetime.now(), level, message))
        self._logger.log(_LEVELS[level], message)

    def info(self, message: str) -> None:
        self._emit(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        if WARNING_MARKER not in message:
            message = f"{WARNING_MARKER} {message}"
        self._emit(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        self._emit(LogLevel.ERROR, message)

    def detail(self, message: str) -> None:
        """Write a file-only line, such as captured command output."""
        self._logger.debug(message, extra={'console': False})

    def messages(self, level: Optional[LogLevel] = None) -> List[str]:
        return [r.message for r in self.records if level is None or r.level is level]

    def collect_warnings(self) -> List[str]:
        """Scan the persisted log for ``Warning:`` lines."""
        for handler in self._logger.handlers:
            handler.flush()
        return scan_warnings(self.path)

    def close(self) -> None:
        for handler in self._logger.handlers[:]:
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)

    def __enter__(self) -> 'AuditLog':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
