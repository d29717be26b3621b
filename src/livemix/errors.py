"""Exception taxonomy for the livemix runtime.

Errors fall into three families:

- Compile-time (``CompileError``): the script text itself is malformed. Raised
  before any node is created and always fatal.
- Structural (``StructuralError``): the script is well-formed but internally
  inconsistent (unknown instances, ports, elements). Fatal; detected by the
  static validation pass wherever possible.
- Per-action (``ActionError``): a single action could not be applied at
  dispatch time. Recoverable; the executor skips the action and continues.
"""

from __future__ import annotations


class LiveMixError(Exception):
    """Base class for all livemix errors."""

    recoverable: bool = False


class ConfigError(LiveMixError):
    """Invalid runtime configuration."""


# ---------------------------------------------------------------------------
# Compile-time
# ---------------------------------------------------------------------------


class CompileError(LiveMixError):
    """A script line could not be compiled."""

    def __init__(self, message: str, lineno: int | None = None, line: str | None = None):
        self.message = message
        self.lineno = lineno
        self.line = line
        super().__init__(self._format())

    def _format(self) -> str:
        if self.lineno is None:
            return self.message
        if self.line is None:
            return f"line {self.lineno}: {self.message}"
        return f"line {self.lineno}: {self.message}: {self.line.strip()!r}"

    def at(self, lineno: int, line: str | None = None) -> CompileError:
        """Return a copy of this error annotated with a script position."""
        if self.lineno is not None:
            return self
        return type(self)(self.message, lineno=lineno, line=line)


class ScriptSyntaxError(CompileError):
    """Unknown keyword, malformed literal or wrong token count."""


class ArityError(CompileError):
    """A macro was instantiated with the wrong number of arguments."""


class UnbalancedBlockError(CompileError):
    """A ``wrap``/``parw`` or ``raw``/``war`` bracket is not closed or opened."""


# ---------------------------------------------------------------------------
# Structural
# ---------------------------------------------------------------------------


class StructuralError(LiveMixError):
    """The graph described by the script is inconsistent."""


class DuplicateInstanceError(StructuralError):
    """``new`` was issued twice for the same instance name."""


class DanglingReferenceError(StructuralError):
    """A statement references an instance or template that does not exist."""


class UnknownPortError(StructuralError):
    """A plug references a port the instance does not expose."""


class PortMismatchError(StructuralError):
    """A plug joins ports of different media or of the wrong direction."""


class UnknownElementError(StructuralError):
    """A property or window operation addresses a missing sub-element."""


class PlugConflictError(StructuralError):
    """An input port was re-plugged while the rewire policy forbids it."""


# ---------------------------------------------------------------------------
# Per-action (recoverable)
# ---------------------------------------------------------------------------


class ActionError(LiveMixError):
    """A single action failed at dispatch time."""

    recoverable = True


class PropertyValueError(ActionError, ValueError):
    """A property value could not be parsed or is out of range."""


class TypeMismatchError(ActionError):
    """A value does not fit the declared type of a property."""


class UnknownInstanceError(ActionError):
    """An action targets an instance that is not live."""


class NoActiveTaskError(LiveMixError, LookupError):
    """A position was queried for an instance with no active animation."""
