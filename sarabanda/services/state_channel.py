"""
Service: state_channel.py
Role:
- Named persistent slots (one JSON value each) shared by every consumer that
  points at the same data directory (the "origin").
- Change propagation to all consumers attached to the same slot name.

Delivery:
- Change event: a successful `write()` is delivered immediately to the other
  handles attached to the same `ChannelStore` (the writer handle is excluded
  from the event but refreshes its own subscribers directly).
- Reconciliation poll: every handle can run a cancellable periodic task that
  re-reads the slot and fires its subscribers when the stored content differs
  from the last content it saw. This covers writers living in another OS process
  and any missed notification.

Guarantees:
- Latest value delivered at least once to every subscriber within one poll
  interval; last-write-wins per slot; no ordering across slots.
- Writers skip the write when the canonical serialization is unchanged, which
  stops update loops between slots that are derived from one another.
- A malformed slot reads as the default (logged); it is left untouched until
  the next successful write.
- Read-only handles (display screens) never write: attempts are logged no-ops.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from sarabanda.config.settings import settings
from .io_utils import JSONDecodeError, dumps_canonical, loads, read_bytes, remove, write_atomic

logger = logging.getLogger(__name__)

T = TypeVar("T")
Subscriber = Callable[[Any], None]
Upgrade = Callable[[Any], Any]


class ChannelStore:
    """
    One origin: a directory of slot files plus the registry of the handles
    opened on it in this process.
    """

    def __init__(self, root: Path | str | None = None) -> None:
        self.root = Path(root or settings.DATA_DIR)
        self._lock = RLock()
        self._handles: Dict[str, List[StateChannel]] = {}

    # -----------------------------
    # Raw slot access
    # -----------------------------
    def path_for(self, name: str) -> Path:
        return self.root / f"{name}.json"

    def get_raw(self, name: str) -> Optional[bytes]:
        """Slot content as stored (undecoded), or None when the slot is empty."""
        return read_bytes(self.path_for(name))

    def set_raw(self, name: str, data: Union[bytes, str]) -> None:
        write_atomic(self.path_for(name), data)

    def remove_raw(self, name: str) -> None:
        remove(self.path_for(name))

    # -----------------------------
    # Handles
    # -----------------------------
    def open(
        self,
        name: str,
        type_: Any,
        default: Any,
        *,
        read_only: bool = False,
        upgrade: Optional[Upgrade] = None,
    ) -> "StateChannel":
        """Attach a new handle on slot `name`."""
        return StateChannel(self, name, type_, default, read_only=read_only, upgrade=upgrade)

    def attach(self, handle: "StateChannel") -> None:
        with self._lock:
            self._handles.setdefault(handle.name, []).append(handle)

    def detach(self, handle: "StateChannel") -> None:
        with self._lock:
            bucket = self._handles.get(handle.name)
            if bucket and handle in bucket:
                bucket.remove(handle)
                if not bucket:
                    self._handles.pop(handle.name, None)

    def handles(self, name: str) -> List["StateChannel"]:
        with self._lock:
            return list(self._handles.get(name, []))

    def notify(self, name: str, raw: Optional[bytes], origin: "StateChannel") -> int:
        """Deliver a change event to every handle on `name` except the writer."""
        delivered = 0
        for handle in self.handles(name):
            if handle is origin:
                continue
            handle._on_change_event(raw)
            delivered += 1
        return delivered


class StateChannel(Generic[T]):
    """Typed handle on one named slot."""

    def __init__(
        self,
        store: ChannelStore,
        name: str,
        type_: Any,
        default: T,
        *,
        read_only: bool = False,
        upgrade: Optional[Upgrade] = None,
    ) -> None:
        self.store = store
        self.name = name
        self.read_only = read_only
        self.version = 0
        self._adapter: TypeAdapter = TypeAdapter(type_)
        self._default = default
        self._upgrade = upgrade
        self._subscribers: List[Subscriber] = []
        self._last_seen: Optional[bytes] = store.get_raw(name)
        self._poll_task: Optional[asyncio.Task] = None
        store.attach(self)

    # -----------------------------
    # Encoding
    # -----------------------------
    def _parse(self, raw: bytes) -> T:
        data = loads(raw.decode("utf-8"))
        if self._upgrade is not None:
            data = self._upgrade(data)
        return self._adapter.validate_python(data)

    def decode(self, raw: Optional[bytes]) -> T:
        """Decode persisted content; missing or malformed content yields the default."""
        if raw is None:
            return self._default
        try:
            return self._parse(raw)
        except (UnicodeDecodeError, JSONDecodeError, ValidationError, ValueError, TypeError) as exc:
            logger.warning(
                "Malformed content in slot, using default",
                extra={"channel": self.name, "error": str(exc)},
            )
            return self._default

    def encode(self, value: T) -> bytes:
        return dumps_canonical(self._adapter.dump_python(value, mode="json", by_alias=True)).encode("utf-8")

    # -----------------------------
    # Contract
    # -----------------------------
    def read(self) -> T:
        return self.decode(self.store.get_raw(self.name))

    def read_valid(self) -> Optional[T]:
        """
        Decoded value of the slot, or None when it is empty or malformed.
        Lets a caller tell a real value from the fallback default.
        """
        raw = self.store.get_raw(self.name)
        if raw is None:
            return None
        try:
            return self._parse(raw)
        except (UnicodeDecodeError, JSONDecodeError, ValidationError, ValueError, TypeError):
            return None

    def is_malformed(self) -> bool:
        """True when the slot holds content that does not decode."""
        return self.store.get_raw(self.name) is not None and self.read_valid() is None

    def write(self, value: T) -> bool:
        """
        Persist `value` and notify consumers.
        Returns True when the slot actually changed.
        """
        if self.read_only:
            logger.warning("Write attempted on read-only channel", extra={"channel": self.name})
            return False
        try:
            raw = self.encode(value)
        except (PydanticSerializationError, ValueError, TypeError) as exc:
            logger.error("Cannot serialize value", extra={"channel": self.name, "error": str(exc)})
            return False

        try:
            if self.store.get_raw(self.name) == raw:
                self._last_seen = raw
                return False
            self.store.set_raw(self.name, raw)
        except OSError as exc:
            logger.error("Failed to persist slot", extra={"channel": self.name, "error": str(exc)})
            return False

        self._deliver(raw)
        self.store.notify(self.name, raw, origin=self)
        return True

    def clear(self) -> bool:
        """Remove the slot; subscribers receive the default value."""
        if self.read_only:
            logger.warning("Clear attempted on read-only channel", extra={"channel": self.name})
            return False
        try:
            if self.store.get_raw(self.name) is None:
                return False
            self.store.remove_raw(self.name)
        except OSError as exc:
            logger.error("Failed to clear slot", extra={"channel": self.name, "error": str(exc)})
            return False
        self._deliver(None)
        self.store.notify(self.name, None, origin=self)
        return True

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback(value)`; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    # -----------------------------
    # Propagation
    # -----------------------------
    def _on_change_event(self, raw: Optional[bytes]) -> None:
        if raw != self._last_seen:
            self._deliver(raw)

    def _deliver(self, raw: Optional[bytes]) -> None:
        self._last_seen = raw
        self.version += 1
        if not self._subscribers:
            return
        value = self.decode(raw)
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber failed", extra={"channel": self.name})

    def poll_once(self) -> bool:
        """Re-read the slot; fire subscribers when it differs from the last seen content."""
        raw = self.store.get_raw(self.name)
        if raw == self._last_seen:
            return False
        self._deliver(raw)
        return True

    # -----------------------------
    # Reconciliation task
    # -----------------------------
    @property
    def polling(self) -> bool:
        return bool(self._poll_task and not self._poll_task.done())

    def start(self, interval: Optional[float] = None) -> None:
        """Start the periodic reconciliation poll (requires a running event loop)."""
        if self.polling:
            return
        period = interval if interval is not None else settings.POLL_INTERVAL_SECONDS

        async def _runner():
            while True:
                await asyncio.sleep(period)
                try:
                    self.poll_once()
                except OSError as exc:
                    logger.warning("Poll failed", extra={"channel": self.name, "error": str(exc)})

        self._poll_task = asyncio.create_task(_runner())

    async def stop(self) -> None:
        """Cancel the reconciliation poll if it runs."""
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None

    async def aclose(self) -> None:
        """Stop polling, drop subscribers and detach from the store."""
        await self.stop()
        self._subscribers.clear()
        self.store.detach(self)
