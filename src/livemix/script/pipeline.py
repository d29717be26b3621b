"""Sub-pipeline descriptions used inside ``raw`` macro definitions.

A description is a launch-style chain of primitive elements:

    filesrc name=src ! decodebin name=demux
    demux. ! videoconvert ! proxysink name=video_out
    demux. ! audioconvert ! audioresample ! proxysink name=audio_out

- A bare token starts a new element of that kind.
- ``key=value`` tokens set a property on the most recent element; ``name=``
  names it (unnamed elements get ``<kind><n>`` like ``decodebin0``).
- ``!`` links the previous element to the next one.
- ``name.`` refers back to an already described element to start a branch.

``proxysrc`` elements become the macro's input ports and ``proxysink``
elements its output ports, both named after the element.
"""

from __future__ import annotations

from collections import deque
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ScriptSyntaxError

CONNECTOR = "!"

INPUT_PORT_KINDS = frozenset({"proxysrc"})
OUTPUT_PORT_KINDS = frozenset({"proxysink"})

# Substrings of element kinds or port names that reveal the medium
_AUDIO_HINTS = ("audio", "alsa", "pulse", "mp3", "wav")
_VIDEO_HINTS = ("video", "ximage", "xvimage", "glimage", "jpeg", "flip")


class Medium(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class PortDirection(str, Enum):
    IN = "in"
    OUT = "out"


class ElementSpec(BaseModel):
    """One primitive element of a sub-pipeline."""

    model_config = ConfigDict(frozen=True)

    kind: str
    name: str
    properties: dict[str, str] = Field(default_factory=dict)


class LinkSpec(BaseModel):
    """A ``!`` connection between two elements, by element name."""

    model_config = ConfigDict(frozen=True)

    src: str
    dst: str


class PortSpec(BaseModel):
    """A named connection point exported by a macro."""

    model_config = ConfigDict(frozen=True)

    name: str
    direction: PortDirection
    medium: Medium | None = Field(
        default=None, description="None = untyped, compatible with either medium"
    )

    def compatible_with(self, other: PortSpec) -> bool:
        """Return True if the two ports may carry the same medium."""
        if self.medium is None or other.medium is None:
            return True
        return self.medium == other.medium


class PipelineLayout(BaseModel):
    """Parsed sub-pipeline: elements in description order plus links."""

    model_config = ConfigDict(frozen=True)

    description: str
    elements: list[ElementSpec]
    links: list[LinkSpec] = Field(default_factory=list)

    def element(self, name: str) -> ElementSpec | None:
        """Return the element with the given name."""
        for e in self.elements:
            if e.name == name:
                return e
        return None

    def element_names(self) -> list[str]:
        return [e.name for e in self.elements]

    def downstream(self, name: str) -> list[str]:
        return [link.dst for link in self.links if link.src == name]

    def upstream(self, name: str) -> list[str]:
        return [link.src for link in self.links if link.dst == name]


def _medium_hint(text: str) -> Medium | None:
    lowered = text.lower()
    audio = any(h in lowered for h in _AUDIO_HINTS)
    video = any(h in lowered for h in _VIDEO_HINTS)
    if audio and not video:
        return Medium.AUDIO
    if video and not audio:
        return Medium.VIDEO
    return None


def _infer_medium(layout: PipelineLayout, element: ElementSpec, direction: PortDirection) -> Medium | None:
    """Infer a port's medium from its name, then from the chain it feeds."""
    hint = _medium_hint(element.name)
    if hint is not None:
        return hint

    step = layout.downstream if direction == PortDirection.IN else layout.upstream
    seen = {element.name}
    pending = deque(step(element.name))
    while pending:
        name = pending.popleft()
        if name in seen:
            continue
        seen.add(name)
        neighbour = layout.element(name)
        if neighbour is None:
            continue
        hint = _medium_hint(neighbour.kind)
        if hint is not None:
            return hint
        pending.extend(step(name))
    return None


def derive_ports(layout: PipelineLayout) -> dict[str, PortSpec]:
    """Return the exported ports of a layout keyed by port name."""
    ports: dict[str, PortSpec] = {}
    for element in layout.elements:
        if element.kind in INPUT_PORT_KINDS:
            direction = PortDirection.IN
        elif element.kind in OUTPUT_PORT_KINDS:
            direction = PortDirection.OUT
        else:
            continue
        ports[element.name] = PortSpec(
            name=element.name,
            direction=direction,
            medium=_infer_medium(layout, element, direction),
        )
    return ports


def parse_pipeline(description: str) -> PipelineLayout:
    """Parse a launch-style sub-pipeline description.

    Raises:
        ScriptSyntaxError: on a dangling connector, a property without an
            element, duplicate element names or an unknown back-reference
    """
    kinds: list[str] = []
    names: list[str | None] = []
    props: list[dict[str, str]] = []
    # Link endpoints are element indexes or back-referenced names
    raw_links: list[tuple[int | str, int | str]] = []

    current: int | None = None
    prev: int | str | None = None
    pending_link = False

    for token in description.split():
        if token == CONNECTOR:
            if prev is None or pending_link:
                raise ScriptSyntaxError(f"Connector '{CONNECTOR}' without a source element")
            pending_link = True
            continue

        if token.endswith(".") and len(token) > 1 and "=" not in token:
            ref = token[:-1]
            if pending_link:
                raw_links.append((prev, ref))
                pending_link = False
            prev = ref
            current = None
            continue

        if "=" in token:
            key, _, value = token.partition("=")
            if current is None or pending_link or not key:
                raise ScriptSyntaxError(f"Property '{token}' does not follow an element")
            if key == "name":
                names[current] = value
            else:
                props[current][key] = value
            continue

        kinds.append(token)
        names.append(None)
        props.append({})
        index = len(kinds) - 1
        if pending_link:
            raw_links.append((prev, index))
            pending_link = False
        prev = index
        current = index

    if pending_link:
        raise ScriptSyntaxError(f"Dangling connector '{CONNECTOR}' at end of pipeline")
    if not kinds:
        raise ScriptSyntaxError("Empty pipeline description")

    counters: dict[str, int] = {}
    resolved: list[str] = []
    for kind, name in zip(kinds, names):
        if name is None:
            n = counters.get(kind, 0)
            counters[kind] = n + 1
            name = f"{kind}{n}"
        if name in resolved:
            raise ScriptSyntaxError(f"Duplicate element name in pipeline: {name}")
        resolved.append(name)

    def endpoint(ref: int | str) -> str:
        if isinstance(ref, int):
            return resolved[ref]
        if ref not in resolved:
            raise ScriptSyntaxError(f"Unknown element reference in pipeline: {ref}.")
        return ref

    links = [LinkSpec(src=endpoint(a), dst=endpoint(b)) for a, b in raw_links]
    elements = [
        ElementSpec(kind=kind, name=name, properties=p)
        for kind, name, p in zip(kinds, resolved, props)
    ]
    return PipelineLayout(description=description, elements=elements, links=links)
