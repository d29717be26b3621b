"""
Static validation of a compiled program.

Replays the ``new``/``plug`` statements against the templates alone and
checks every trigger and action reference, so a script that is internally
inconsistent fails before any node is created or any trigger fires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..config import RuntimeConfig
from ..errors import (
    CompileError,
    DanglingReferenceError,
    DuplicateInstanceError,
    LiveMixError,
    PlugConflictError,
    PortMismatchError,
    UnknownElementError,
    UnknownPortError,
)
from ..graph.macros import MacroExpander
from .pipeline import PortDirection
from .schema import NodeTemplate, Program

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Summary of a validated program."""

    instances: dict[str, str] = field(default_factory=dict)
    plugs: list[tuple[str, str, str, str]] = field(default_factory=list)
    clocks: list[str] = field(default_factory=list)
    windows: list[str] = field(default_factory=list)
    trigger_count: int = 0

    def to_dict(self) -> dict:
        return {
            "instances": dict(self.instances),
            "plugs": [f"{s}.{sp} -> {d}.{dp}" for s, sp, d, dp in self.plugs],
            "clocks": list(self.clocks),
            "windows": list(self.windows),
            "triggers": self.trigger_count,
        }


def _with_line(error: LiveMixError, lineno: int) -> LiveMixError:
    return type(error)(f"line {lineno}: {error}")


def validate_program(program: Program, config: RuntimeConfig | None = None) -> ValidationReport:
    """Check all cross references of ``program``.

    Raises:
        DuplicateInstanceError: if ``new`` reuses an instance name
        DanglingReferenceError: on references to undeclared instances
        UnknownPortError: if a plug names a port the instance lacks
        PortMismatchError: on plugs with mismatched media or directions
        UnknownElementError: if an action addresses a missing element or window
        PlugConflictError: on re-plugs while the rewire policy forbids them
        ArityError: on a wrong argument count
        TypeMismatchError: if a ``new`` argument does not fit its binding
    """
    config = config or RuntimeConfig()
    expander = MacroExpander(program.templates)
    report = ValidationReport()
    declared: dict[str, NodeTemplate] = {}
    sources: dict[tuple[str, str], tuple[str, str]] = {}

    for stmt in program.statements:
        try:
            if stmt.kind == "new":
                if stmt.instance in declared:
                    raise DuplicateInstanceError(f"Instance already exists: {stmt.instance}")
                expansion = expander.expand(stmt.template, stmt.args)
                declared[stmt.instance] = expansion.template
                report.instances[stmt.instance] = stmt.template
                continue

            for name in (stmt.src_instance, stmt.dst_instance):
                if name not in declared:
                    raise DanglingReferenceError(f"plug references undeclared instance {name}")
            src = declared[stmt.src_instance].exports.get(stmt.src_port)
            dst = declared[stmt.dst_instance].exports.get(stmt.dst_port)
            if src is None:
                raise UnknownPortError(f"{stmt.src_instance} has no port {stmt.src_port}")
            if dst is None:
                raise UnknownPortError(f"{stmt.dst_instance} has no port {stmt.dst_port}")
            if src.direction != PortDirection.OUT or dst.direction != PortDirection.IN:
                raise PortMismatchError(
                    f"plug must go from an out port to an in port, got "
                    f"{stmt.src_instance}.{stmt.src_port} ({src.direction.value}) -> "
                    f"{stmt.dst_instance}.{stmt.dst_port} ({dst.direction.value})"
                )
            if not src.compatible_with(dst):
                raise PortMismatchError(
                    f"{stmt.src_instance}.{stmt.src_port} carries {src.medium.value}, "
                    f"{stmt.dst_instance}.{stmt.dst_port} expects {dst.medium.value}"
                )

            key = (stmt.dst_instance, stmt.dst_port)
            source = (stmt.src_instance, stmt.src_port)
            previous = sources.get(key)
            if previous is not None and previous != source and config.rewire_policy == "error":
                raise PlugConflictError(
                    f"{stmt.dst_instance}.{stmt.dst_port} is already fed by "
                    f"{previous[0]}.{previous[1]}"
                )
            sources[key] = source
        except CompileError as e:
            raise e.at(stmt.lineno) from None
        except LiveMixError as e:
            raise _with_line(e, stmt.lineno) from e

    report.plugs = [(s, sp, d, dp) for (d, dp), (s, sp) in sources.items()]
    report.windows = [name for name, t in declared.items() if t.has_window]

    for binding in program.bindings:
        try:
            _check_binding(binding, declared, report)
        except LiveMixError as e:
            raise _with_line(e, binding.lineno) from e

    report.trigger_count = len(program.bindings)
    logger.info(
        f"Validated program: {len(report.instances)} instance(s), "
        f"{len(report.plugs)} active plug(s), {report.trigger_count} trigger(s)"
    )
    return report


def _check_binding(binding, declared: dict[str, NodeTemplate], report: ValidationReport):
    trigger = binding.trigger
    if trigger.kind == "progress":
        if trigger.clock not in declared:
            raise DanglingReferenceError(f"progress trigger on undeclared clock {trigger.clock}")
        if trigger.clock not in report.clocks:
            report.clocks.append(trigger.clock)
    elif trigger.kind == "callback" and trigger.instance not in declared:
        raise DanglingReferenceError(f"callback trigger on undeclared instance {trigger.instance}")

    for action in binding.group.actions:
        if action.kind == "terminate":
            continue
        template = declared.get(action.target)
        if template is None:
            raise DanglingReferenceError(f"action targets undeclared instance {action.target}")

        if action.kind == "prop" and template.layout.element(action.element) is None:
            raise UnknownElementError(f"{action.target} has no element {action.element}")
        if action.kind in ("window_show", "window_move") and not template.has_window:
            raise UnknownElementError(f"{action.target} has no window")
        if action.kind == "window_move":
            if action.clock not in declared:
                raise DanglingReferenceError(f"window move timed on undeclared clock {action.clock}")
            if action.clock not in report.clocks:
                report.clocks.append(action.clock)
