"""
LiveMixRuntime - wires a script to a media backend.

    compile -> validate -> instantiate + plug -> scheduler

Compile-time and structural errors surface from ``build()`` before any node
is created. Once built, the runtime forwards backend signals to the
scheduler through ``on_progress`` / ``on_callback``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config import RuntimeConfig
from .graph.collaborator import Collaborator
from .graph.macros import MacroExpander
from .graph.manager import GraphManager
from .realtime.executor import ActionExecutor
from .realtime.interpolation import InterpolationEngine
from .realtime.scheduler import EventScheduler
from .realtime.signals import SignalChannel
from .script.compiler import compile_script
from .script.schema import Program
from .script.validate import ValidationReport, validate_program

logger = logging.getLogger(__name__)


class LiveMixRuntime:
    """One run of a compiled program against a collaborator."""

    def __init__(
        self,
        program: Program,
        collaborator: Collaborator,
        config: RuntimeConfig | None = None,
    ):
        self.program = program
        self.collaborator = collaborator
        self.config = config or RuntimeConfig()

        self.signals = SignalChannel()
        self.engine = InterpolationEngine()
        self.graph = GraphManager(MacroExpander(program.templates), collaborator, self.config)
        self.executor = ActionExecutor(self.graph, self.engine)
        self.scheduler = EventScheduler(
            program, self.graph, self.executor, self.engine, self.signals, self.config
        )
        self.report: ValidationReport | None = None

    @classmethod
    def from_script(
        cls, text: str, collaborator: Collaborator, config: RuntimeConfig | None = None
    ) -> LiveMixRuntime:
        return cls(compile_script(text), collaborator, config)

    @classmethod
    def from_file(
        cls, path: str | Path, collaborator: Collaborator, config: RuntimeConfig | None = None
    ) -> LiveMixRuntime:
        script_path = Path(path)
        logger.info(f"Loading script {script_path}")
        return cls.from_script(script_path.read_text(), collaborator, config)

    @property
    def built(self) -> bool:
        return self.report is not None

    def build(self) -> ValidationReport:
        """Validate the program, then create and wire every instance.

        Safe to call more than once; only the first call has an effect.
        """
        if self.report is not None:
            return self.report

        report = validate_program(self.program, self.config)
        for stmt in self.program.statements:
            if stmt.kind == "new":
                self.graph.instantiate(stmt.template, stmt.instance, stmt.args)
            else:
                self.graph.plug(stmt.src_instance, stmt.src_port, stmt.dst_instance, stmt.dst_port)
        self.report = report
        return report

    def begin(self):
        """Build if needed and enter RUNNING without starting the loop thread."""
        self.build()
        self.scheduler.begin()

    def start(self):
        """Build if needed and start the scheduler loop thread."""
        self.build()
        self.scheduler.start()

    def wait(self, timeout: float | None = None) -> bool:
        return self.scheduler.wait(timeout)

    def run(self, timeout: float | None = None) -> bool:
        """Start and block until the run ends (or ``timeout`` elapses)."""
        self.start()
        finished = self.wait(timeout)
        if not finished:
            logger.warning(f"Run still active after {timeout:g}s, stopping")
            self.stop("timeout")
            self.wait(5.0)
        return finished

    def stop(self, reason: str = "stop requested"):
        self.scheduler.stop(reason)

    def on_progress(self, handle: Any, value: float) -> bool:
        """Inbound progress signal from the backend."""
        return self.signals.on_progress(handle, value)

    def on_callback(self, handle: Any, event: str) -> bool:
        """Inbound event signal from the backend."""
        return self.signals.on_callback(handle, event)
