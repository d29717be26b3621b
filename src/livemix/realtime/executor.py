"""
Action executor.

Applies one ``ActionGroup`` to the graph:

- sequential groups apply in order, each action committed before the next;
- parallel (``wrap``) groups are collapsed so that, per target and field, only
  the last action in script order survives, then applied under one graph
  lock so they land at the same instant.

A window move commits by registering its animation; the motion itself is
driven later by the scheduler tick. Recoverable failures skip only the
failing action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import ActionError
from ..graph.manager import GraphManager, TransportOp
from ..script.schema import ActionGroup
from .interpolation import InterpolationEngine

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    action: object
    applied: bool
    error: str | None = None


@dataclass
class GroupResult:
    """What happened to each action of a dispatched group."""

    outcomes: list[ActionOutcome] = field(default_factory=list)
    terminate: bool = False

    @property
    def applied(self) -> list:
        return [o.action for o in self.outcomes if o.applied]

    @property
    def skipped(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if not o.applied]


def conflict_key(action) -> tuple:
    """Target and field an action writes; equal keys conflict in a parallel group."""
    kind = action.kind
    if kind == "terminate":
        return ("terminate",)
    if kind == "play":
        return (action.target, "transport")
    if kind == "seek":
        return (action.target, "segment")
    if kind == "prop":
        return (action.target, "prop", action.element, action.name)
    if kind == "window_show":
        return (action.target, "window_visible")
    return (action.target, "window_position")


def collapse_parallel(actions: list) -> tuple[list, list]:
    """Resolve same-target same-field conflicts last-write-wins.

    Returns:
        (effective actions in script order, superseded actions)
    """
    last: dict[tuple, int] = {}
    for i, action in enumerate(actions):
        last[conflict_key(action)] = i
    effective, superseded = [], []
    for i, action in enumerate(actions):
        if last[conflict_key(action)] == i:
            effective.append(action)
        else:
            superseded.append(action)
    return effective, superseded


class ActionExecutor:
    """Applies action groups through the graph manager."""

    def __init__(self, graph: GraphManager, engine: InterpolationEngine):
        self.graph = graph
        self.engine = engine

    def execute(self, group: ActionGroup) -> GroupResult:
        """Apply every action of ``group``.

        Recoverable errors (``ActionError``) skip the failing action with a
        warning; any other exception propagates and aborts the group.
        """
        result = GroupResult()

        if group.mode == "parallel":
            effective, superseded = collapse_parallel(group.actions)
            for action in superseded:
                logger.debug(f"Line {action.lineno}: superseded by a later action on the same field")
                result.outcomes.append(
                    ActionOutcome(action, applied=False, error="superseded")
                )
            with self.graph.batch():
                for action in effective:
                    self._apply_guarded(action, result)
        else:
            for action in group.actions:
                self._apply_guarded(action, result)

        return result

    def _apply_guarded(self, action, result: GroupResult):
        try:
            self.apply(action)
        except ActionError as e:
            logger.warning(f"Skipping action on line {action.lineno}: {e}")
            result.outcomes.append(ActionOutcome(action, applied=False, error=str(e)))
            return
        result.outcomes.append(ActionOutcome(action, applied=True))
        if action.kind == "terminate":
            result.terminate = True

    def apply(self, action):
        """Apply a single action.

        Raises:
            UnknownInstanceError: if the target is not live
            UnknownElementError: if the target lacks the element or window
            PropertyValueError: if a property value cannot be parsed
            TypeMismatchError: if a property type conflicts with its binding
        """
        kind = action.kind
        if kind == "terminate":
            return
        if kind == "play":
            self.graph.set_transport(action.target, TransportOp(action.op))
        elif kind == "seek":
            self.graph.set_transport(action.target, TransportOp.SEEK, action.start, action.stop)
        elif kind == "prop":
            self.graph.set_property(
                action.target, action.element, action.name, action.type_name, action.value
            )
        elif kind == "window_show":
            self.graph.show_window(action.target)
        elif kind == "window_move":
            self._move(action)
        else:
            raise ValueError(f"Unsupported action kind: {kind}")

    def _move(self, action):
        # Fails with UnknownInstanceError/UnknownElementError before registering
        self.graph.window_geometry(action.target)
        # A superseded move is evaluated on its own clock
        prior = self.engine.task(action.target)
        now = None
        if prior is not None and prior.clock is not None:
            now = self.graph.progress(prior.clock)
        task = self.engine.move(
            action.target,
            action.t0,
            (action.x0, action.y0),
            action.t1,
            (action.x1, action.y1),
            ease_x=action.ease_x,
            ease_y=action.ease_y,
            clock=action.clock,
            now=now,
        )
        logger.info(
            f"{action.target}: move to ({task.end[0]:g}, {task.end[1]:g}) over "
            f"{action.clock} {task.t0:g}..{task.t1:g} ({task.ease_x}/{task.ease_y})"
        )
