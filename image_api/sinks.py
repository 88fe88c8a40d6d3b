"""
Log sinks cho request entries
File (JSON lines), Python logging, và composite fan-out
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Protocol, Sequence, Union

from .errors import LoggingError
from .models import LogEntry

logger = logging.getLogger(__name__)


class LogSink(Protocol):
    async def append(self, entry: LogEntry) -> None:
        ...


class FileLogSink:
    """Append entries dưới dạng JSON lines vào một file"""

    def __init__(self, log_path: Union[str, Path]):
        self.log_path = Path(log_path)
        self._lock = asyncio.Lock()

    def _write_line(self, line: str):
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def append(self, entry: LogEntry) -> None:
        line = entry.model_dump_json()
        loop = asyncio.get_running_loop()
        try:
            async with self._lock:
                await loop.run_in_executor(None, self._write_line, line)
        except OSError as e:
            raise LoggingError(f"Failed to write log entry to {self.log_path}: {e}")


class LoggerLogSink:
    """Forward entries tới Python logging"""

    def __init__(self, logger_name: str = "image_api.requests"):
        self.logger = logging.getLogger(logger_name)

    async def append(self, entry: LogEntry) -> None:
        level = logging.INFO if entry.result == "success" else logging.ERROR
        self.logger.log(
            level,
            f"{entry.endpoint} {entry.result} in {entry.duration_ms:.1f}ms"
            f" user={entry.user or '-'}"
            + (f" error={entry.message}" if entry.message else ""),
        )


class MemoryLogSink:
    """Giữ entries trong memory (tests và local runs)"""

    def __init__(self):
        self.entries: List[LogEntry] = []

    async def append(self, entry: LogEntry) -> None:
        self.entries.append(entry)


class CompositeLogSink:
    """
    Fan-out tới nhiều sinks

    Every sink is awaited even when another fails; failures are collected
    into a single LoggingError raised after all sinks finished.
    """

    def __init__(self, sinks: Sequence[LogSink]):
        self.sinks = list(sinks)

    async def append(self, entry: LogEntry) -> None:
        results = await asyncio.gather(
            *(sink.append(entry) for sink in self.sinks),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        for failure in failures:
            logger.warning(f"Log sink failed: {failure}")
        if failures:
            raise LoggingError(
                f"{len(failures)} of {len(self.sinks)} log sinks failed",
                failures=failures,
            )
