"""Intermediate program produced by the script compiler.

A compiled script is a ``Program``:

- ``templates``: macro definitions (``raw ... war``) plus the built-in IO
  templates, keyed by name.
- ``statements``: ``new`` and ``plug`` statements in script order. They are
  replayed against the graph manager before the scheduler starts.
- ``bindings``: trigger -> action group pairs in declaration order.

Example script and its shape:

    raw flipper 0 proxysrc name=video_in ! videoflip name=flip ! proxysink name=video_out
    war
    new mp4input movie clip.mp4
    new flipper f
    new xoutput screen 0 0 640 480
    plug video_out movie video_in f
    plug video_out f video_in screen
    on pre act movie play start
    on progress movie 0.5 wrap
    act f prop flip method GstOrientation 2
    act screen window show
    parw
    on callback movie end terminate
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from .pipeline import PipelineLayout, PortSpec

# Element name used by binding lines that configure the node itself rather
# than one of its sub-elements (window tags, geometry)
EXTERNAL_ELEMENT = "raw"

WINDOW_TAG = "gtktag"
WINDOW_TAG_VALUE = "window"


class ParamRef(BaseModel):
    """A 1-based positional parameter reference, ``$N`` or ``$N=default``."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1)
    default: str | None = None


class PropertyBinding(BaseModel):
    """One ``<element> <property> <type> <value>`` line of a macro body."""

    model_config = ConfigDict(frozen=True)

    element: str
    name: str
    type_name: str
    literal: str | None = None
    param: ParamRef | None = None

    @property
    def is_external(self) -> bool:
        return self.element == EXTERNAL_ELEMENT

    def resolve(self, args: list[str]) -> str:
        """Return the raw value for a fully bound argument list."""
        if self.param is None:
            return self.literal or ""
        return args[self.param.index - 1]


class NodeTemplate(BaseModel):
    """A macro: a sub-pipeline plus its parameterized property bindings."""

    model_config = ConfigDict(frozen=True)

    name: str
    port_count: int = Field(..., ge=0, description="Declared port count from the raw header")
    layout: PipelineLayout
    bindings: list[PropertyBinding] = Field(default_factory=list)
    exports: dict[str, PortSpec] = Field(default_factory=dict)
    defaults: dict[int, str] = Field(
        default_factory=dict, description="Default values by parameter index"
    )
    builtin: bool = False

    @property
    def parameter_count(self) -> int:
        """Highest positional parameter referenced by the bindings."""
        indexes = [b.param.index for b in self.bindings if b.param is not None]
        return max(indexes, default=0)

    @property
    def required_count(self) -> int:
        """Number of leading parameters without a default."""
        if not self.defaults:
            return self.parameter_count
        return min(self.defaults) - 1

    @property
    def has_window(self) -> bool:
        for b in self.bindings:
            if b.is_external and b.name == WINDOW_TAG and b.literal == WINDOW_TAG_VALUE:
                return True
        return False


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


class NewStatement(BaseModel):
    """``new <template> <instance> <args...>``"""

    kind: Literal["new"] = "new"
    template: str
    instance: str
    args: list[str] = Field(default_factory=list)
    lineno: int = 0


class PlugStatement(BaseModel):
    """``plug <srcPort> <srcInstance> <dstPort> <dstInstance>``"""

    kind: Literal["plug"] = "plug"
    src_port: str
    src_instance: str
    dst_port: str
    dst_instance: str
    lineno: int = 0


Statement = Annotated[NewStatement | PlugStatement, Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class PlayAction(BaseModel):
    """``act <inst> play start|pause|stop``"""

    kind: Literal["play"] = "play"
    target: str
    op: Literal["start", "pause", "stop"]
    lineno: int = 0


class SeekAction(BaseModel):
    """``act <inst> seek <from> <to>`` (seconds)"""

    kind: Literal["seek"] = "seek"
    target: str
    start: float
    stop: float
    lineno: int = 0


class PropertyAction(BaseModel):
    """``act <inst> prop <element> <name> <type> <value...>``"""

    kind: Literal["prop"] = "prop"
    target: str
    element: str
    name: str
    type_name: str
    value: str
    lineno: int = 0


class WindowShowAction(BaseModel):
    """``act <inst> window show``"""

    kind: Literal["window_show"] = "window_show"
    target: str
    lineno: int = 0


class WindowMoveAction(BaseModel):
    """``act <inst> window move <clock> <t0> <x0> <y0> <t1> <x1> <y1> <easeX> <easeY>``"""

    kind: Literal["window_move"] = "window_move"
    target: str
    clock: str
    t0: float
    x0: float
    y0: float
    t1: float
    x1: float
    y1: float
    ease_x: str = "linear"
    ease_y: str = "linear"
    lineno: int = 0


class TerminateAction(BaseModel):
    """``terminate``: ends the run."""

    kind: Literal["terminate"] = "terminate"
    lineno: int = 0

    @property
    def target(self) -> None:
        return None


Action = Annotated[
    PlayAction
    | SeekAction
    | PropertyAction
    | WindowShowAction
    | WindowMoveAction
    | TerminateAction,
    Field(discriminator="kind"),
]


class ActionGroup(BaseModel):
    """Actions released together by one trigger."""

    mode: Literal["sequential", "parallel"] = "sequential"
    actions: list[Action] = Field(default_factory=list)

    @property
    def terminates(self) -> bool:
        return any(a.kind == "terminate" for a in self.actions)


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class PreTrigger(BaseModel):
    """Fires once when the run starts."""

    kind: Literal["pre"] = "pre"


class ProgressTrigger(BaseModel):
    """Fires once when ``clock`` reports progress >= ``threshold``."""

    kind: Literal["progress"] = "progress"
    clock: str
    threshold: float = Field(..., ge=0)


class CallbackTrigger(BaseModel):
    """Fires when ``instance`` reports ``event``."""

    kind: Literal["callback"] = "callback"
    instance: str
    event: str


Trigger = Annotated[
    PreTrigger | ProgressTrigger | CallbackTrigger, Field(discriminator="kind")
]


class TriggerBinding(BaseModel):
    """A trigger paired with the action group it releases."""

    trigger: Trigger
    group: ActionGroup
    order: int = Field(..., ge=0, description="Declaration order within the script")
    lineno: int = 0

    def describe(self) -> str:
        t = self.trigger
        if t.kind == "progress":
            return f"progress {t.clock} {t.threshold:g}"
        if t.kind == "callback":
            return f"callback {t.instance} {t.event}"
        return "pre"


class Program(BaseModel):
    """Root of a compiled script."""

    templates: dict[str, NodeTemplate] = Field(default_factory=dict)
    statements: list[Statement] = Field(default_factory=list)
    bindings: list[TriggerBinding] = Field(default_factory=list)

    def new_statements(self) -> list[NewStatement]:
        """Return ``new`` statements in script order."""
        return [s for s in self.statements if s.kind == "new"]

    def plug_statements(self) -> list[PlugStatement]:
        """Return ``plug`` statements in script order."""
        return [s for s in self.statements if s.kind == "plug"]

    def instance_names(self) -> list[str]:
        """Return declared instance names in script order."""
        return [s.instance for s in self.new_statements()]

    def pre_bindings(self) -> list[TriggerBinding]:
        """Return ``pre`` bindings in declaration order."""
        return [b for b in self.bindings if b.trigger.kind == "pre"]

    def progress_bindings(self) -> list[TriggerBinding]:
        """Return progress bindings sorted by (threshold, declaration order)."""
        found = [b for b in self.bindings if b.trigger.kind == "progress"]
        return sorted(found, key=lambda b: (b.trigger.threshold, b.order))

    def callback_bindings(self) -> list[TriggerBinding]:
        """Return callback bindings in declaration order."""
        return [b for b in self.bindings if b.trigger.kind == "callback"]
