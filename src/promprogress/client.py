"""Segment transfer client reporting progress through a ProgressReader."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Sequence

import httpx

from .metrics import MetricSink
from .progress import DEFAULT_UPDATE_INTERVAL, ProgressError, ProgressReader, TimedUpdate

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class TransferError(ProgressError):
    """Raised when a transfer cannot complete."""


class TransferNetworkError(TransferError):
    """Raised when an HTTP request for a segment fails."""


@dataclass(slots=True)
class TransferResult:
    """Outcome of a completed multi-segment transfer."""

    output_path: str
    bytes_written: int
    total: int
    segments: int
    owner_id: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "output": self.output_path,
            "bytesWritten": self.bytes_written,
            "total": self.total,
            "segments": self.segments,
            "ownerId": self.owner_id,
        }


def is_remote(source: str) -> bool:
    """Return True when ``source`` is an HTTP(S) URL rather than a local path."""

    return source.startswith(("http://", "https://"))


class ResponseStream:
    """Readable view over a streamed ``httpx.Response`` body."""

    def __init__(self, response: httpx.Response, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.response = response
        self._chunks = response.iter_bytes(chunk_size=chunk_size)
        self._buffer = b""

    def read(self, size: Optional[int] = -1) -> bytes:
        if size is None or size < 0:
            data = self._buffer + b"".join(self._chunks)
            self._buffer = b""
            return data

        while len(self._buffer) < size:
            chunk = next(self._chunks, None)
            if chunk is None:
                break
            self._buffer += chunk

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        self.response.close()


class TransferClient:
    """Streams one or more segments into a single file, publishing progress."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        timeout: float = 30.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Instantiate the client with an optional bearer token."""

        self.token = token
        self.chunk_size = chunk_size
        self.client = httpx.Client(timeout=timeout, transport=transport, follow_redirects=True)

        if self.token:
            logger.debug("Initialized with token: %s***", self.token[:4])
            self.client.headers.update({"Authorization": f"Bearer {self.token}"})

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "TransferClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def segment_size(self, source: str) -> Optional[int]:
        """Return the size of a segment in bytes, or None when the server does not say."""

        if not is_remote(source):
            try:
                return os.path.getsize(source)
            except OSError as exc:
                logger.error("Cannot stat segment %s: %s", source, exc)
                raise TransferError(
                    f"Segment not readable: {source}", context={"source": source}
                ) from exc

        try:
            response = self.client.head(source)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("HEAD %s failed: %s", source, exc)
            raise TransferNetworkError(
                f"Failed to probe {source}", context={"source": source}
            ) from exc

        raw = response.headers.get("content-length")
        try:
            size = int(raw) if raw is not None else None
        except ValueError:
            logger.debug("Ignoring invalid Content-Length %r for %s", raw, source)
            size = None
        logger.debug("Segment %s size: %s bytes", source, size)
        if size is None or size < 0:
            return None
        return size

    @contextmanager
    def open_segment(self, source: str) -> Iterator[BinaryIO]:
        """Yield a readable stream for a local path or an HTTP(S) URL."""

        if not is_remote(source):
            with open(source, "rb") as handle:
                yield handle
            return

        with self.client.stream("GET", source) as response:
            response.raise_for_status()
            yield ResponseStream(response, self.chunk_size)

    def _total_size(self, sources: Sequence[str]) -> int:
        sizes = [self.segment_size(source) for source in sources]
        if any(size is None for size in sizes):
            logger.warning("Total size unknown; progress will not be reported")
            return 0
        return sum(size for size in sizes if size is not None)

    def transfer(
        self,
        sources: Sequence[str],
        output_path: str,
        *,
        owner_id: str,
        sink: MetricSink,
        interval: float = DEFAULT_UPDATE_INTERVAL,
    ) -> TransferResult:
        """Concatenate ``sources`` into ``output_path``, reporting one percentage."""

        segments: List[str] = list(sources)
        if not segments:
            raise TransferError("No segments to transfer", context={"owner_id": owner_id})

        logger.info(
            "Starting transfer: %s segment(s) -> %s (owner %s)",
            len(segments),
            output_path,
            owner_id,
        )
        context: Dict[str, Any] = {"owner_id": owner_id, "output": output_path}
        reader: Optional[ProgressReader] = None
        timer: Optional[TimedUpdate] = None

        try:
            total = self._total_size(segments)
            os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

            with open(output_path, "wb") as output:
                for index, source in enumerate(segments):
                    is_final = index == len(segments) - 1
                    context["source"] = source
                    with self.open_segment(source) as stream:
                        if reader is None:
                            reader = ProgressReader(
                                stream, total, owner_id, sink, final=is_final
                            )
                            timer = reader.start_timed_update(interval)
                        else:
                            reader.set_next_reader(stream, is_final)

                        logger.debug("Reading segment %s/%s: %s", index + 1, len(segments), source)
                        for chunk in iter(lambda: reader.read(self.chunk_size), b""):
                            output.write(chunk)
        except httpx.HTTPError as exc:
            logger.error("Transfer failed for %s: %s", context.get("source"), exc)
            raise TransferNetworkError(
                f"Failed to fetch {context.get('source')}", context=context
            ) from exc
        except OSError as exc:
            logger.error("Transfer I/O failed for %s: %s", output_path, exc)
            raise TransferError(f"Failed to write {output_path}", context=context) from exc
        finally:
            if timer is not None:
                timer.cancel()

        assert reader is not None
        logger.info("Transfer complete: %s (%s bytes)", output_path, reader.current)
        return TransferResult(
            output_path=output_path,
            bytes_written=reader.current,
            total=total,
            segments=len(segments),
            owner_id=owner_id,
        )
