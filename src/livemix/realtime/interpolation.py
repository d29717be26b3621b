"""
Interpolation engine for animated window moves.

Each ``window move`` action registers an ``AnimationTask`` keyed by the target
instance. Time is measured on the progress of the task's clock instance, so
an animation pauses with its clock and jumps with a seek.

Position at clock time t:

    u = clamp((t - t0) / (t1 - t0), 0, 1)
    x(t) = x0 * (1 - ease_x(u)) + x1 * ease_x(u)

which lands exactly on x0 at t0 and on x1 at t1 for every easing.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import NoActiveTaskError

if TYPE_CHECKING:
    from ..graph.manager import GraphManager

logger = logging.getLogger(__name__)

EasingFn = Callable[[float], float]


def linear(u: float) -> float:
    return u


def cosine(u: float) -> float:
    """Smooth ease-in/ease-out: (1 - cos(u*pi)) / 2."""
    return (1.0 - math.cos(u * math.pi)) / 2.0


def jump(u: float) -> float:
    """Hold the start value until the end, then land on the end value."""
    return 1.0 if u >= 1.0 else 0.0


EASINGS: dict[str, EasingFn] = {
    "linear": linear,
    "mcos": cosine,
    "cos": cosine,
    "jump": jump,
}


def get_easing(name: str) -> EasingFn:
    """Look up an easing function by its script name.

    Raises:
        KeyError: if no easing is registered under ``name``
    """
    try:
        return EASINGS[name]
    except KeyError:
        raise KeyError(f"Unknown easing function: {name}") from None


def normalize(t: float, t0: float, t1: float) -> float:
    """Map clock time onto [0, 1] across the task window."""
    if t1 <= t0:
        return 1.0 if t >= t1 else 0.0
    return min(1.0, max(0.0, (t - t0) / (t1 - t0)))


def blend(start: float, end: float, e: float) -> float:
    return start * (1.0 - e) + end * e


@dataclass
class AnimationTask:
    """One in-flight window move."""

    instance: str
    clock: str | None
    t0: float
    t1: float
    start: tuple[float, float]
    end: tuple[float, float]
    ease_x: str = "linear"
    ease_y: str = "linear"
    _fx: EasingFn = field(init=False, repr=False)
    _fy: EasingFn = field(init=False, repr=False)

    def __post_init__(self):
        self._fx = get_easing(self.ease_x)
        self._fy = get_easing(self.ease_y)

    def position_at(self, t: float) -> tuple[float, float]:
        u = normalize(t, self.t0, self.t1)
        return (
            blend(self.start[0], self.end[0], self._fx(u)),
            blend(self.start[1], self.end[1], self._fy(u)),
        )

    def finished(self, t: float) -> bool:
        return t >= self.t1


class InterpolationEngine:
    """Owns the active animation tasks, at most one per instance."""

    def __init__(self):
        self._tasks: dict[str, AnimationTask] = {}
        self._lock = threading.Lock()

    def move(
        self,
        instance: str,
        t0: float,
        start: tuple[float, float],
        t1: float,
        end: tuple[float, float],
        ease_x: str = "linear",
        ease_y: str = "linear",
        clock: str | None = None,
        now: float | None = None,
    ) -> AnimationTask:
        """Register a move, superseding any active move on the same instance.

        Args:
            instance: Instance whose window moves
            t0: Clock time at which the move starts
            start: Start coordinate, ignored when superseding
            t1: Clock time at which the move ends
            end: End coordinate
            ease_x: Easing name for the x axis
            ease_y: Easing name for the y axis
            clock: Instance whose progress is the time base
            now: Current time on the clock of the superseded task, used to
                find where that task has got to

        Returns:
            AnimationTask: the registered task
        """
        with self._lock:
            prior = self._tasks.get(instance)
            if prior is not None:
                current = prior.position_at(now if now is not None else prior.t0)
                logger.info(
                    f"Move on {instance} superseded, continuing from "
                    f"({current[0]:.1f}, {current[1]:.1f})"
                )
                start = current

            task = AnimationTask(
                instance=instance,
                clock=clock,
                t0=t0,
                t1=t1,
                start=(float(start[0]), float(start[1])),
                end=(float(end[0]), float(end[1])),
                ease_x=ease_x,
                ease_y=ease_y,
            )
            self._tasks[instance] = task
            return task

    def position(self, instance: str, t: float) -> tuple[float, float]:
        """Return the interpolated position of ``instance`` at clock time ``t``.

        Raises:
            NoActiveTaskError: if the instance has no active animation
        """
        with self._lock:
            task = self._tasks.get(instance)
        if task is None:
            raise NoActiveTaskError(f"No active animation for {instance}")
        return task.position_at(t)

    def task(self, instance: str) -> AnimationTask | None:
        with self._lock:
            return self._tasks.get(instance)

    def is_active(self, instance: str) -> bool:
        with self._lock:
            return instance in self._tasks

    def active_count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def advance(self, graph: GraphManager) -> list[str]:
        """Push current positions to the graph and retire finished tasks.

        Tasks whose clock has not reported progress yet, or has not reached
        ``t0``, are left untouched. A finished task is snapped to its end
        coordinate before it is retired.

        Returns:
            Names of the instances whose task retired on this tick
        """
        with self._lock:
            tasks = list(self._tasks.values())

        retired = []
        for task in tasks:
            t = graph.progress(task.clock) if task.clock is not None else None
            if t is None or t < task.t0:
                continue

            x, y = task.position_at(t)
            graph.move_window(task.instance, round(x), round(y))

            if task.finished(t):
                with self._lock:
                    # A newer move may have replaced this task meanwhile
                    if self._tasks.get(task.instance) is task:
                        del self._tasks[task.instance]
                        retired.append(task.instance)
                logger.debug(f"Move on {task.instance} finished at ({x:.1f}, {y:.1f})")
        return retired

    def cancel_all(self) -> int:
        """Drop every active task. Returns how many were cancelled."""
        with self._lock:
            count = len(self._tasks)
            self._tasks.clear()
        if count:
            logger.info(f"Cancelled {count} active animation(s)")
        return count
