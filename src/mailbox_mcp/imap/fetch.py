# src/mailbox_mcp/imap/fetch.py
"""Batch FETCH with a two-condition completion barrier.

A batch is a stream of per-message event groups (start -> attributes ->
body chunks -> end) followed by one stream-level end (or error). Each
message is parsed in a worker thread as soon as its own events end, so
parses finish in any order and may finish after the stream has already
declared itself complete. The aggregator resolves exactly once, when

    received == expected and stream_ended

Either condition alone is wrong: ``stream_ended`` alone drops parses still
in flight; the counter alone can fire before the last message has even
been announced.
"""
from __future__ import annotations

import asyncio
import enum
import imaplib
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, List, Optional, Sequence, Set, Tuple, TypeVar

import structlog

from mailbox_mcp.errors import ProtocolError
from mailbox_mcp.imap.fetch_response import iter_fetch_messages
from mailbox_mcp.imap.session import ConnectionSession

logger = structlog.get_logger(__name__)

T = TypeVar("T")

FETCH_ATTRS = "(UID FLAGS BODY.PEEK[])"
BODY_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class RawMessage:
    seqno: int
    uid: Optional[int]
    flags: Tuple[str, ...]
    body: bytes


class FetchState(enum.Enum):
    OPEN = "open"
    PENDING_TAIL = "pending_tail"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class _InFlight:
    seqno: int
    uid: Optional[int] = None
    flags: Tuple[str, ...] = ()
    chunks: List[bytes] = field(default_factory=list)
    ended: bool = False


@dataclass
class FetchSession(Generic[T]):
    expected: int = 0
    received: int = 0
    stream_ended: bool = False
    collected: Dict[int, T] = field(default_factory=dict)
    failures: Dict[int, BaseException] = field(default_factory=dict)
    state: FetchState = FetchState.OPEN

    @property
    def complete(self) -> bool:
        return self.stream_ended and self.received == self.expected

    @property
    def finished(self) -> bool:
        return self.state in (FetchState.RESOLVED, FetchState.FAILED)


class FetchAggregator(Generic[T]):
    """
    Event sink for one FETCH batch. All event methods must be called from the
    event loop thread; ``build`` runs in a worker thread.
    """

    def __init__(self, build: Callable[[RawMessage], T]) -> None:
        self._build = build
        self.session: FetchSession[T] = FetchSession()
        self._inflight: Dict[int, _InFlight] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    # -----------------------
    # per-message events
    # -----------------------

    def message_started(self, seqno: int) -> None:
        if self.session.finished:
            return
        if seqno in self._inflight:
            logger.debug("fetch_duplicate_message", seqno=seqno)
            return
        self._inflight[seqno] = _InFlight(seqno=seqno)
        self.session.expected += 1

    def message_attributes(self, seqno: int, *, uid: Optional[int] = None, flags: Sequence[str] = ()) -> None:
        msg = self._inflight.get(seqno)
        if msg is None or msg.ended:
            return
        if uid is not None:
            msg.uid = uid
        if flags:
            msg.flags = tuple(flags)

    def message_body(self, seqno: int, chunk: bytes) -> None:
        msg = self._inflight.get(seqno)
        if msg is None or msg.ended:
            return
        msg.chunks.append(chunk)

    def message_ended(self, seqno: int) -> None:
        msg = self._inflight.get(seqno)
        if msg is None or msg.ended or self.session.finished:
            return
        msg.ended = True
        raw = RawMessage(seqno=seqno, uid=msg.uid, flags=msg.flags, body=b"".join(msg.chunks))
        msg.chunks = []

        task = asyncio.get_running_loop().create_task(self._parse(raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _parse(self, raw: RawMessage) -> None:
        try:
            record = await asyncio.to_thread(self._build, raw)
        except Exception as e:
            # one bad message never sinks the batch
            logger.warning("message_parse_failed", seqno=raw.seqno, uid=raw.uid, error=str(e))
            self.session.failures[raw.seqno] = e
        else:
            self.session.collected[raw.seqno] = record
        finally:
            self.session.received += 1
            self._maybe_resolve()

    # -----------------------
    # stream-level events
    # -----------------------

    def stream_ended(self) -> None:
        if self.session.finished or self.session.stream_ended:
            return
        self.session.stream_ended = True
        logger.debug(
            "fetch_stream_ended",
            received=self.session.received,
            expected=self.session.expected,
        )
        if not self._maybe_resolve():
            self.session.state = FetchState.PENDING_TAIL

    def stream_failed(self, exc: BaseException) -> None:
        if self.session.finished:
            return
        self.session.state = FetchState.FAILED
        logger.error("fetch_failed", error=str(exc))
        self._future.set_exception(exc)

    # -----------------------
    # barrier
    # -----------------------

    def _maybe_resolve(self) -> bool:
        if self.session.finished or not self.session.complete:
            return False
        self.session.state = FetchState.RESOLVED
        records = [self.session.collected[k] for k in sorted(self.session.collected)]
        logger.debug("fetch_resolved", count=len(records), skipped=len(self.session.failures))
        self._future.set_result(records)
        return True

    @property
    def resolved(self) -> bool:
        return self._future.done()

    async def wait(self) -> List[T]:
        return await self._future

    # -----------------------
    # imaplib driver
    # -----------------------

    async def feed(self, data: Sequence, *, wanted: Optional[Set[int]] = None) -> None:
        """Replay one imaplib FETCH response as message events, then end the stream."""
        for piece in iter_fetch_messages(data):
            uid = piece.uid
            if wanted is not None and uid is not None and uid not in wanted:
                continue
            if piece.body is None:
                # unsolicited FETCH (e.g. a FLAGS update), not one of ours
                logger.debug("fetch_unsolicited", seqno=piece.seqno, attributes=piece.attributes)
                continue
            self.message_started(piece.seqno)
            self.message_attributes(piece.seqno, uid=uid, flags=piece.flags)
            body = piece.body or b""
            for start in range(0, len(body), BODY_CHUNK_SIZE):
                self.message_body(piece.seqno, body[start : start + BODY_CHUNK_SIZE])
            self.message_ended(piece.seqno)
            # let finished parses report in while the rest is still streaming
            await asyncio.sleep(0)
        self.stream_ended()

    async def fetch(self, session: ConnectionSession, uids: Sequence[int]) -> List[T]:
        if not uids:
            self.stream_ended()
            return await self.wait()

        uid_str = ",".join(str(u) for u in uids)
        logger.info("fetch_started", mailbox=session.mailbox, count=len(uids))

        def _impl(conn: imaplib.IMAP4):
            typ, data = conn.uid("FETCH", uid_str, FETCH_ATTRS)
            if typ != "OK":
                raise ProtocolError(f"FETCH failed: {data}")
            return data

        try:
            data = await session.run(_impl)
        except Exception as e:
            self.stream_failed(e)
            return await self.wait()

        await self.feed(data, wanted=set(uids))
        return await self.wait()
