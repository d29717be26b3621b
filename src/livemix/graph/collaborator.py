"""
Outbound interface to the media backend.

The runtime never touches media itself. It creates nodes, wires ports and
issues commands through a ``Collaborator``; the backend reports progress and
events back through the runtime's signal channel.

``RecordingCollaborator`` implements the interface without a backend. It logs
and records every call, which is what ``livemix run`` uses for dry runs and
what the tests assert against.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from ..script.pipeline import PipelineLayout
from ..script.values import TypedValue

logger = logging.getLogger(__name__)


class Collaborator(Protocol):
    """Commands the runtime issues against the media backend.

    Every command is fire-and-forget: it returns once the backend has queued
    it, never once the effect has happened.
    """

    def create(
        self,
        kind: str,
        name: str,
        layout: PipelineLayout,
        settings: dict[str, TypedValue],
    ) -> Any:
        """Create a node and return an opaque handle for it."""
        ...

    def connect(self, src: Any, src_port: str, dst: Any, dst_port: str) -> bool:
        """Link an output port to an input port. Returns False if refused."""
        ...

    def disconnect(self, src: Any, src_port: str, dst: Any, dst_port: str) -> None:
        ...

    def set_property(self, handle: Any, element: str, name: str, value: TypedValue) -> None:
        ...

    def transport(self, handle: Any, op: str, args: tuple = ()) -> None:
        ...

    def window_show(self, handle: Any) -> None:
        ...

    def window_move(self, handle: Any, x: int, y: int) -> None:
        ...


@dataclass(frozen=True)
class RecordedCall:
    method: str
    handle: Any
    args: tuple = ()


class RecordingCollaborator:
    """Collaborator that records calls instead of driving a backend.

    Handles are the instance names themselves.
    """

    def __init__(self, log_level: int = logging.DEBUG):
        self.calls: list[RecordedCall] = []
        self._lock = threading.Lock()
        self._log_level = log_level

    def _record(self, method: str, handle: Any, *args):
        call = RecordedCall(method=method, handle=handle, args=args)
        with self._lock:
            self.calls.append(call)
        if args:
            logger.log(self._log_level, f"{method} {handle} {' '.join(str(a) for a in args)}")
        else:
            logger.log(self._log_level, f"{method} {handle}")

    def create(self, kind, name, layout, settings):
        self._record("create", name, kind, layout.description)
        return name

    def connect(self, src, src_port, dst, dst_port):
        self._record("connect", src, src_port, dst, dst_port)
        return True

    def disconnect(self, src, src_port, dst, dst_port):
        self._record("disconnect", src, src_port, dst, dst_port)

    def set_property(self, handle, element, name, value):
        self._record("set_property", handle, element, name, value)

    def transport(self, handle, op, args=()):
        self._record("transport", handle, op, *args)

    def window_show(self, handle):
        self._record("window_show", handle)

    def window_move(self, handle, x, y):
        self._record("window_move", handle, x, y)

    def calls_to(self, method: str, handle: Any = None) -> list[RecordedCall]:
        """Return recorded calls of ``method``, optionally for one handle."""
        with self._lock:
            return [
                c
                for c in self.calls
                if c.method == method and (handle is None or c.handle == handle)
            ]
