"""
Graph manager: the live set of node instances and the wiring between them.

All mutation of instances, ports and plugs goes through this class and is
serialized by one re-entrant lock. The executor holds that lock for the whole
of a parallel action group via ``batch()`` so the group lands at one instant.

Per-clock progress is also kept here: the scheduler records every progress
signal and the interpolation engine reads it back as its time base.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..config import RuntimeConfig
from ..errors import (
    DanglingReferenceError,
    DuplicateInstanceError,
    PlugConflictError,
    PortMismatchError,
    TypeMismatchError,
    UnknownElementError,
    UnknownInstanceError,
    UnknownPortError,
)
from ..script.pipeline import PortDirection, PortSpec
from ..script.schema import NodeTemplate
from ..script.values import TypedValue, coerce_value
from .collaborator import Collaborator
from .macros import MacroExpander

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class TransportOp(str, Enum):
    START = "start"
    PAUSE = "pause"
    STOP = "stop"
    SEEK = "seek"


_STATE_AFTER = {
    TransportOp.START: TransportState.PLAYING,
    TransportOp.PAUSE: TransportState.PAUSED,
    TransportOp.STOP: TransportState.STOPPED,
}


@dataclass
class WindowState:
    """Geometry and visibility of a windowed instance."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    visible: bool = False


@dataclass
class NodeInstance:
    """A live node. Owned by the graph manager; copies are handed out."""

    name: str
    template: NodeTemplate
    args: list[str]
    handle: Any
    ports: dict[str, PortSpec]
    properties: dict[str, dict[str, TypedValue]] = field(default_factory=dict)
    settings: dict[str, TypedValue] = field(default_factory=dict)
    transport: TransportState = TransportState.STOPPED
    window: WindowState | None = None
    segment: tuple[float, float] | None = None


def _window_from_settings(settings: dict[str, TypedValue]) -> WindowState:
    def setting(name: str) -> int:
        value = settings.get(name)
        return int(value.value) if value is not None else 0

    return WindowState(
        x=setting("x"), y=setting("y"), width=setting("width"), height=setting("height")
    )


class GraphManager:
    """Owns node instances, their ports and the plugs between them."""

    def __init__(
        self,
        expander: MacroExpander,
        collaborator: Collaborator,
        config: RuntimeConfig | None = None,
    ):
        self.expander = expander
        self.collaborator = collaborator
        self.config = config or RuntimeConfig()

        self._lock = threading.RLock()
        self._instances: dict[str, NodeInstance] = {}
        self._handles: dict[Any, str] = {}
        # (dst instance, dst port) -> (src instance, src port)
        self._plugs: dict[tuple[str, str], tuple[str, str]] = {}
        self._progress: dict[str, float] = {}

    @contextmanager
    def batch(self) -> Iterator[GraphManager]:
        """Hold the graph lock across several operations."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def instantiate(self, template_name: str, instance_name: str, args: list[str]) -> dict[str, PortSpec]:
        """Expand a template and register the resulting instance.

        Returns:
            The instance's exported ports keyed by name

        Raises:
            DuplicateInstanceError: if the name is already taken
            DanglingReferenceError: if the template does not exist
            ArityError: on a wrong argument count
            TypeMismatchError: if an argument does not fit its binding
        """
        with self._lock:
            if instance_name in self._instances:
                raise DuplicateInstanceError(f"Instance already exists: {instance_name}")

            expansion = self.expander.expand(template_name, args)
            template = expansion.template
            handle = self.collaborator.create(
                template_name, instance_name, template.layout, dict(expansion.node_settings)
            )

            instance = NodeInstance(
                name=instance_name,
                template=template,
                args=expansion.args,
                handle=handle,
                ports=expansion.ports,
                settings=expansion.node_settings,
                window=_window_from_settings(expansion.node_settings)
                if template.has_window
                else None,
            )
            self._instances[instance_name] = instance
            self._handles[handle] = instance_name

            for element, props in expansion.element_settings.items():
                for name, value in props.items():
                    self.collaborator.set_property(handle, element, name, value)
                    instance.properties.setdefault(element, {})[name] = value

        logger.info(
            f"Created {instance_name} from {template_name} "
            f"(ports: {', '.join(instance.ports) or 'none'})"
        )
        return dict(instance.ports)

    def _require(self, name: str, error: type[Exception] = UnknownInstanceError) -> NodeInstance:
        instance = self._instances.get(name)
        if instance is None:
            raise error(f"Unknown instance: {name}")
        return instance

    def get(self, name: str) -> NodeInstance:
        """Return a snapshot of an instance.

        Raises:
            UnknownInstanceError: if no such instance exists
        """
        with self._lock:
            instance = self._require(name)
            return replace(
                instance,
                properties={e: dict(p) for e, p in instance.properties.items()},
                window=replace(instance.window) if instance.window else None,
            )

    def instance_names(self) -> list[str]:
        with self._lock:
            return list(self._instances)

    def instance_for_handle(self, handle: Any) -> str | None:
        """Map a collaborator handle (or an instance name) to an instance name."""
        with self._lock:
            if handle in self._handles:
                return self._handles[handle]
            if isinstance(handle, str) and handle in self._instances:
                return handle
            return None

    def ports(self, name: str) -> dict[str, PortSpec]:
        with self._lock:
            return dict(self._require(name).ports)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _port(self, instance: NodeInstance, port: str, direction: PortDirection) -> PortSpec:
        spec = instance.ports.get(port)
        if spec is None:
            raise UnknownPortError(f"{instance.name} has no port {port}")
        if spec.direction != direction:
            raise PortMismatchError(
                f"{instance.name}.{port} is an {spec.direction.value} port, "
                f"expected {direction.value}"
            )
        return spec

    def plug(self, src_instance: str, src_port: str, dst_instance: str, dst_port: str) -> bool:
        """Connect an output port to an input port.

        A destination port holds at most one source. Re-plugging it replaces
        the source (rewire policy ``rewire``) or raises (policy ``error``).
        Repeating an existing plug changes nothing.

        Returns:
            True if the wiring changed

        Raises:
            DanglingReferenceError: if either instance is unknown
            UnknownPortError: if either port is absent
            PortMismatchError: on a medium or direction mismatch
            PlugConflictError: on a rewire when the policy forbids it
        """
        with self._lock:
            src = self._require(src_instance, DanglingReferenceError)
            dst = self._require(dst_instance, DanglingReferenceError)
            src_spec = self._port(src, src_port, PortDirection.OUT)
            dst_spec = self._port(dst, dst_port, PortDirection.IN)
            if not src_spec.compatible_with(dst_spec):
                raise PortMismatchError(
                    f"Cannot plug {src_instance}.{src_port} ({src_spec.medium.value}) "
                    f"into {dst_instance}.{dst_port} ({dst_spec.medium.value})"
                )

            key = (dst_instance, dst_port)
            source = (src_instance, src_port)
            previous = self._plugs.get(key)
            if previous == source:
                logger.debug(f"Plug {src_instance}.{src_port} -> {dst_instance}.{dst_port} already active")
                return False
            if previous is not None and self.config.rewire_policy == "error":
                raise PlugConflictError(
                    f"{dst_instance}.{dst_port} is already fed by {previous[0]}.{previous[1]}"
                )

            if previous is not None:
                old = self._instances[previous[0]]
                self.collaborator.disconnect(old.handle, previous[1], dst.handle, dst_port)
                del self._plugs[key]
            if not self.collaborator.connect(src.handle, src_port, dst.handle, dst_port):
                raise PortMismatchError(
                    f"Backend refused {src_instance}.{src_port} -> {dst_instance}.{dst_port}"
                )
            self._plugs[key] = source

        if previous is not None:
            logger.info(
                f"Rewired {dst_instance}.{dst_port}: {previous[0]}.{previous[1]} -> "
                f"{src_instance}.{src_port}"
            )
        else:
            logger.info(f"Plugged {src_instance}.{src_port} -> {dst_instance}.{dst_port}")
        return True

    def unplug(self, dst_instance: str, dst_port: str) -> tuple[str, str] | None:
        """Disconnect whatever feeds an input port.

        Returns:
            The (instance, port) that was disconnected, or None if the port was free

        Raises:
            DanglingReferenceError: if the instance is unknown
            UnknownPortError: if the port is absent
        """
        with self._lock:
            dst = self._require(dst_instance, DanglingReferenceError)
            self._port(dst, dst_port, PortDirection.IN)
            previous = self._plugs.pop((dst_instance, dst_port), None)
            if previous is None:
                return None
            src = self._instances[previous[0]]
            self.collaborator.disconnect(src.handle, previous[1], dst.handle, dst_port)
        logger.info(f"Unplugged {previous[0]}.{previous[1]} -> {dst_instance}.{dst_port}")
        return previous

    def source_of(self, dst_instance: str, dst_port: str) -> tuple[str, str] | None:
        """Return the (instance, port) feeding an input port, if any."""
        with self._lock:
            return self._plugs.get((dst_instance, dst_port))

    def edges(self) -> list[tuple[str, str, str, str]]:
        """Return active plugs as (src, src_port, dst, dst_port) tuples."""
        with self._lock:
            return [(s, sp, d, dp) for (d, dp), (s, sp) in self._plugs.items()]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_transport(self, name: str, op: TransportOp | str, *args: float) -> TransportState:
        """Issue a transport command.

        Raises:
            UnknownInstanceError: if the instance is not live
        """
        op = TransportOp(op)
        with self._lock:
            instance = self._require(name)
            self.collaborator.transport(instance.handle, op.value, tuple(args))
            if op == TransportOp.SEEK:
                instance.segment = (args[0], args[1]) if len(args) == 2 else None
            else:
                instance.transport = _STATE_AFTER[op]
            state = instance.transport
        logger.info(f"{name}: {op.value} {' '.join(f'{a:g}' for a in args)}".rstrip())
        return state

    def transport_state(self, name: str) -> TransportState:
        with self._lock:
            return self._require(name).transport

    def set_property(
        self, name: str, element: str, prop: str, type_name: str, raw_value: str
    ) -> TypedValue:
        """Coerce and apply a property on a sub-element of an instance.

        Raises:
            UnknownInstanceError: if the instance is not live
            UnknownElementError: if the instance has no such element
            PropertyValueError: if the value cannot be parsed for ``type_name``
            TypeMismatchError: if ``type_name`` differs from the type the
                template already binds to this property
        """
        with self._lock:
            instance = self._require(name)
            if instance.template.layout.element(element) is None:
                raise UnknownElementError(f"{name} has no element {element}")

            current = instance.properties.get(element, {}).get(prop)
            if current is not None and current.type_name != type_name:
                raise TypeMismatchError(
                    f"{name}.{element}.{prop} is {current.type_name}, not {type_name}"
                )

            value = coerce_value(type_name, raw_value)
            self.collaborator.set_property(instance.handle, element, prop, value)
            instance.properties.setdefault(element, {})[prop] = value
        logger.info(f"{name}.{element}.{prop} = {value}")
        return value

    def _window(self, name: str) -> tuple[NodeInstance, WindowState]:
        instance = self._require(name)
        if instance.window is None:
            raise UnknownElementError(f"{name} has no window")
        return instance, instance.window

    def show_window(self, name: str):
        """Make an instance's window visible.

        Raises:
            UnknownInstanceError: if the instance is not live
            UnknownElementError: if the instance has no window
        """
        with self._lock:
            instance, window = self._window(name)
            self.collaborator.window_show(instance.handle)
            window.visible = True
        logger.info(f"{name}: window shown at ({window.x}, {window.y})")

    def move_window(self, name: str, x: int, y: int):
        with self._lock:
            instance, window = self._window(name)
            if (window.x, window.y) == (x, y):
                return
            self.collaborator.window_move(instance.handle, x, y)
            window.x, window.y = x, y

    def window_geometry(self, name: str) -> WindowState:
        """Return a copy of an instance's window state."""
        with self._lock:
            _, window = self._window(name)
            return replace(window)

    # ------------------------------------------------------------------
    # Clocks
    # ------------------------------------------------------------------

    def record_progress(self, clock: str, value: float) -> float:
        """Store the latest progress reported by ``clock``."""
        with self._lock:
            previous = self._progress.get(clock)
            self._progress[clock] = value
        if previous is not None and value < previous:
            logger.debug(f"Progress of {clock} went back from {previous:g} to {value:g}")
        return value

    def progress(self, clock: str) -> float | None:
        """Latest progress of ``clock``, or None before its first report."""
        with self._lock:
            return self._progress.get(clock)
