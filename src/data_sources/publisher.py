"""Fire-and-forget hand-off of alert records to an external store."""

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

import httpx
from loguru import logger

from src.core.errors import PublishError
from src.utils.config import PublisherConfig


class AlertWriter(Protocol):
    def write(self, records: List[dict]) -> None:
        ...


class JsonlAlertWriter:
    """Append records as JSON lines."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def write(self, records: List[dict]) -> None:
        with self._lock, open(self.path, "a") as f:
            for record in records:
                f.write(json.dumps(record, default=str) + "\n")


class HttpAlertWriter:
    """POST record batches to an HTTP endpoint."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    def write(self, records: List[dict]) -> None:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.url, json={"records": records})
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PublishError(f"POST {self.url} failed: {e}") from e


class AlertPublisher:
    """Serialize alert records and write them on a worker thread.

    ``publish`` never blocks on the write and never raises for write errors;
    failures are logged when the background write completes. A single worker
    drains the queue, so batches are written in the order they were published
    and a deactivation never lands before the activation it supersedes.
    """

    def __init__(self, writer: Optional[AlertWriter]):
        self.writer = writer
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alert-publish")
        self.failures = 0

    @property
    def enabled(self) -> bool:
        return self.writer is not None

    def publish(self, records: Iterable) -> Optional[Future]:
        payload = [r.to_dict() if hasattr(r, "to_dict") else dict(r) for r in records]
        if not payload or self.writer is None:
            return None
        future = self._executor.submit(self.writer.write, payload)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            self.failures += 1
            logger.warning(f"Alert publish failed: {error}")

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def create_publisher(config: PublisherConfig) -> AlertPublisher:
    if not config.enabled or config.backend == "none":
        return AlertPublisher(None)
    if config.backend == "http":
        if not config.url:
            logger.warning("HTTP publisher selected without a URL, publishing disabled")
            return AlertPublisher(None)
        writer = HttpAlertWriter(config.url, config.timeout_seconds)
    else:
        writer = JsonlAlertWriter(config.path)
    logger.info(f"Alert publisher: {config.backend}")
    return AlertPublisher(writer)
