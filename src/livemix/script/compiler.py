"""
Line-oriented compiler for livemix scripts.

Turns script text into a ``Program`` (see ``schema.py``). Each non-blank line
that does not start with ``//`` is one command:

    raw <name> <portCount> <pipeline...>     start a template definition
      <element> <property> <type> <value>    property binding, value may be $N or $N=default
    war                                      end of template definition
    new <template> <instance> <args...>
    plug <srcPort> <srcInstance> <dstPort> <dstInstance>
    on pre [wrap | act ... | terminate]
    on progress <clock> <threshold> [wrap | act ... | terminate]
    on callback <instance> <event> [wrap | act ... | terminate]
    act <instance> <verb> <args...>
    parw                                     end of a wrap block

A trigger line without an inline action takes its single action from the
following line. All errors raised here are ``CompileError`` subclasses
annotated with the offending line.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from ..errors import (
    ArityError,
    CompileError,
    DanglingReferenceError,
    PropertyValueError,
    ScriptSyntaxError,
    UnbalancedBlockError,
    UnknownElementError,
)
from ..realtime.interpolation import EASINGS
from .builtins import BUILTIN_SCRIPT
from .pipeline import derive_ports, parse_pipeline
from .schema import (
    EXTERNAL_ELEMENT,
    ActionGroup,
    CallbackTrigger,
    NewStatement,
    NodeTemplate,
    ParamRef,
    PlayAction,
    PlugStatement,
    PreTrigger,
    Program,
    ProgressTrigger,
    PropertyAction,
    PropertyBinding,
    SeekAction,
    TerminateAction,
    TriggerBinding,
    WindowMoveAction,
    WindowShowAction,
)
from .values import coerce_value, check_type_name, parse_number

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "//"

PARAM_PATTERN = re.compile(r"^\$(\d+)(?:=(.+))?$")

PLAY_OPS = ("start", "pause", "stop")


@dataclass
class ScriptLine:
    """A significant script line with its 1-based line number."""

    lineno: int
    text: str
    tokens: list[str]

    @property
    def keyword(self) -> str:
        return self.tokens[0]


def tokenize(text: str) -> list[ScriptLine]:
    """Split script text into significant lines, dropping comments and blanks."""
    lines = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith(COMMENT_PREFIX):
            continue
        lines.append(ScriptLine(lineno=lineno, text=raw, tokens=stripped.split()))
    return lines


class _Lines:
    """Cursor over significant lines, one line of lookahead."""

    def __init__(self, lines: list[ScriptLine]):
        self._lines = lines
        self._pos = 0

    def __iter__(self) -> Iterator[ScriptLine]:
        return self

    def __next__(self) -> ScriptLine:
        if self._pos >= len(self._lines):
            raise StopIteration
        line = self._lines[self._pos]
        self._pos += 1
        return line

    def take(self) -> ScriptLine | None:
        return next(self, None)


class ScriptCompiler:
    """Compiles script text into a ``Program``.

    Templates persist across ``compile`` calls on the same compiler, so a
    library of macros can be loaded once and reused.
    """

    def __init__(self, include_builtins: bool = True):
        self.templates: dict[str, NodeTemplate] = {}
        if include_builtins:
            self._load_builtins()

    def _load_builtins(self):
        for line_block in _split_blocks(tokenize(BUILTIN_SCRIPT)):
            header, body = line_block
            template = self._compile_template(header, body, builtin=True)
            self.templates[template.name] = template

    def compile(self, text: str) -> Program:
        """Compile a whole script.

        Raises:
            CompileError: on any syntax, arity or bracketing error
            DanglingReferenceError: if ``new`` names an undefined template
            UnknownElementError: if a binding addresses a missing element
        """
        statements = []
        bindings: list[TriggerBinding] = []
        lines = _Lines(tokenize(text))

        for line in lines:
            try:
                keyword = line.keyword
                if keyword == "raw":
                    body = self._read_template_body(line, lines)
                    template = self._compile_template(line, body)
                    self._register(template, line)
                elif keyword == "new":
                    statements.append(self._compile_new(line))
                elif keyword == "plug":
                    statements.append(self._compile_plug(line))
                elif keyword == "on":
                    bindings.append(self._compile_trigger(line, lines, order=len(bindings)))
                elif keyword in ("war", "parw"):
                    raise UnbalancedBlockError(f"'{keyword}' without an opening block")
                elif keyword in ("act", "terminate", "wrap"):
                    raise ScriptSyntaxError(f"'{keyword}' outside of an 'on' trigger")
                else:
                    raise ScriptSyntaxError(f"Unknown keyword: {keyword}")
            except CompileError as e:
                raise e.at(line.lineno, line.text) from None

        program = Program(
            templates=dict(self.templates),
            statements=statements,
            bindings=bindings,
        )
        logger.info(
            f"Compiled script: {len(program.templates)} template(s), "
            f"{len(program.new_statements())} instance(s), "
            f"{len(program.plug_statements())} plug(s), {len(bindings)} trigger(s)"
        )
        return program

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def _register(self, template: NodeTemplate, line: ScriptLine):
        existing = self.templates.get(template.name)
        if existing is not None and not existing.builtin:
            raise ScriptSyntaxError(f"Template already defined: {template.name}")
        if existing is not None:
            logger.info(f"Template {template.name} (line {line.lineno}) shadows the built-in")
        self.templates[template.name] = template

    @staticmethod
    def _read_template_body(header: ScriptLine, lines: _Lines) -> list[ScriptLine]:
        body = []
        while True:
            line = lines.take()
            if line is None:
                raise UnbalancedBlockError("'raw' block is missing its closing 'war'").at(
                    header.lineno, header.text
                )
            if line.keyword == "war":
                if len(line.tokens) != 1:
                    raise ScriptSyntaxError("'war' takes no arguments").at(
                        line.lineno, line.text
                    )
                return body
            body.append(line)

    def _compile_template(
        self, header: ScriptLine, body: list[ScriptLine], builtin: bool = False
    ) -> NodeTemplate:
        tokens = header.tokens
        if len(tokens) < 4:
            raise ScriptSyntaxError(
                "Expected 'raw <name> <portCount> <pipeline...>'"
            ).at(header.lineno, header.text)
        name = tokens[1]
        try:
            port_count = int(tokens[2])
        except ValueError:
            raise ScriptSyntaxError(f"Malformed port count: {tokens[2]}").at(
                header.lineno, header.text
            ) from None
        if port_count < 0:
            raise ScriptSyntaxError(f"Negative port count: {port_count}").at(
                header.lineno, header.text
            )

        try:
            layout = parse_pipeline(" ".join(tokens[3:]))
        except CompileError as e:
            raise e.at(header.lineno, header.text) from None

        element_names = set(layout.element_names())
        bindings = []
        for line in body:
            try:
                bindings.append(self._compile_binding(line, element_names))
            except CompileError as e:
                raise e.at(line.lineno, line.text) from None
            except UnknownElementError as e:
                raise UnknownElementError(f"line {line.lineno}: {e}") from None

        try:
            defaults = _collect_defaults(bindings)
        except CompileError as e:
            raise e.at(header.lineno, header.text) from None

        exports = derive_ports(layout)
        if len(exports) != port_count and not builtin:
            logger.info(
                f"Template {name} declares {port_count} port(s) but exports "
                f"{len(exports)}: {', '.join(exports) or 'none'}"
            )

        return NodeTemplate(
            name=name,
            port_count=port_count,
            layout=layout,
            bindings=bindings,
            exports=exports,
            defaults=defaults,
            builtin=builtin,
        )

    @staticmethod
    def _compile_binding(line: ScriptLine, element_names: set[str]) -> PropertyBinding:
        if len(line.tokens) != 4:
            raise ScriptSyntaxError(
                "Expected '<element> <property> <type> <value>' in template body"
            )
        element, prop, type_name, value = line.tokens
        if element != EXTERNAL_ELEMENT and element not in element_names:
            raise UnknownElementError(f"Template has no element named {element}")
        check_type_name(type_name)

        match = PARAM_PATTERN.match(value)
        if match is None:
            if value.startswith("$"):
                raise ScriptSyntaxError(f"Malformed parameter reference: {value}")
            _check_literal(type_name, value)
            return PropertyBinding(
                element=element, name=prop, type_name=type_name, literal=value
            )

        index = int(match.group(1))
        if index < 1:
            raise ScriptSyntaxError("Parameters are numbered from $1")
        default = match.group(2)
        if default is not None:
            _check_literal(type_name, default)
        return PropertyBinding(
            element=element,
            name=prop,
            type_name=type_name,
            param=ParamRef(index=index, default=default),
        )

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _compile_new(self, line: ScriptLine) -> NewStatement:
        if len(line.tokens) < 3:
            raise ScriptSyntaxError("Expected 'new <template> <instance> <args...>'")
        template_name, instance = line.tokens[1], line.tokens[2]
        args = line.tokens[3:]
        template = self.templates.get(template_name)
        if template is None:
            raise DanglingReferenceError(
                f"line {line.lineno}: unknown template {template_name}"
            )
        if not template.required_count <= len(args) <= template.parameter_count:
            raise ArityError(_arity_message(template, len(args)))
        return NewStatement(
            template=template_name, instance=instance, args=args, lineno=line.lineno
        )

    @staticmethod
    def _compile_plug(line: ScriptLine) -> PlugStatement:
        if len(line.tokens) != 5:
            raise ScriptSyntaxError(
                "Expected 'plug <srcPort> <srcInstance> <dstPort> <dstInstance>'"
            )
        _, src_port, src_instance, dst_port, dst_instance = line.tokens
        return PlugStatement(
            src_port=src_port,
            src_instance=src_instance,
            dst_port=dst_port,
            dst_instance=dst_instance,
            lineno=line.lineno,
        )

    # ------------------------------------------------------------------
    # Triggers and actions
    # ------------------------------------------------------------------

    def _compile_trigger(self, line: ScriptLine, lines: _Lines, order: int) -> TriggerBinding:
        tokens = line.tokens
        if len(tokens) < 2:
            raise ScriptSyntaxError("Expected 'on pre|progress|callback ...'")

        kind = tokens[1]
        if kind == "pre":
            trigger = PreTrigger()
            rest = tokens[2:]
        elif kind == "progress":
            if len(tokens) < 4:
                raise ScriptSyntaxError("Expected 'on progress <clock> <threshold>'")
            threshold = parse_number(tokens[3], "progress threshold")
            if threshold < 0:
                raise ScriptSyntaxError(f"Negative progress threshold: {tokens[3]}")
            trigger = ProgressTrigger(clock=tokens[2], threshold=threshold)
            rest = tokens[4:]
        elif kind == "callback":
            if len(tokens) < 4:
                raise ScriptSyntaxError("Expected 'on callback <instance> <event>'")
            trigger = CallbackTrigger(instance=tokens[2], event=tokens[3])
            rest = tokens[4:]
        else:
            raise ScriptSyntaxError(f"Unknown trigger kind: {kind}")

        if rest == ["wrap"]:
            group = ActionGroup(mode="parallel", actions=self._read_wrap_block(line, lines))
        elif rest:
            action = self._compile_action(rest, line.lineno, line.text, len(tokens) - len(rest))
            group = ActionGroup(actions=[action])
        else:
            following = lines.take()
            if following is None:
                raise ScriptSyntaxError("Trigger without an action")
            try:
                action = self._compile_action(following.tokens, following.lineno, following.text)
            except CompileError as e:
                raise e.at(following.lineno, following.text) from None
            group = ActionGroup(actions=[action])

        return TriggerBinding(trigger=trigger, group=group, order=order, lineno=line.lineno)

    def _read_wrap_block(self, opener: ScriptLine, lines: _Lines) -> list:
        actions = []
        while True:
            line = lines.take()
            if line is None:
                raise UnbalancedBlockError("'wrap' block is missing its closing 'parw'").at(
                    opener.lineno, opener.text
                )
            if line.keyword == "parw":
                if len(line.tokens) != 1:
                    raise ScriptSyntaxError("'parw' takes no arguments").at(
                        line.lineno, line.text
                    )
                if not actions:
                    logger.warning(f"Empty wrap block at line {opener.lineno}")
                return actions
            if line.keyword not in ("act", "terminate"):
                raise UnbalancedBlockError(
                    f"'{line.keyword}' inside a wrap block, missing 'parw'"
                ).at(line.lineno, line.text)
            try:
                actions.append(self._compile_action(line.tokens, line.lineno, line.text))
            except CompileError as e:
                raise e.at(line.lineno, line.text) from None

    @staticmethod
    def _compile_action(tokens: list[str], lineno: int, text: str = "", offset: int = 0):
        if tokens == ["terminate"]:
            return TerminateAction(lineno=lineno)
        if tokens[0] != "act":
            raise ScriptSyntaxError(f"Expected 'act' or 'terminate', got {tokens[0]}")
        if len(tokens) < 3:
            raise ScriptSyntaxError("Expected 'act <instance> <verb> <args...>'")

        target, verb, args = tokens[1], tokens[2], tokens[3:]

        if verb == "play":
            if len(args) != 1 or args[0] not in PLAY_OPS:
                raise ScriptSyntaxError(f"Expected 'play {'|'.join(PLAY_OPS)}'")
            return PlayAction(target=target, op=args[0], lineno=lineno)

        if verb == "seek":
            if len(args) != 2:
                raise ScriptSyntaxError("Expected 'seek <from> <to>'")
            return SeekAction(
                target=target,
                start=parse_number(args[0], "seek start"),
                stop=parse_number(args[1], "seek stop"),
                lineno=lineno,
            )

        if verb == "prop":
            if len(args) < 4:
                raise ScriptSyntaxError("Expected 'prop <element> <name> <type> <value>'")
            element, name, type_name = args[:3]
            check_type_name(type_name)
            # The value is the rest of the line, inner spacing included
            if text:
                value = text.split(None, offset + 6)[-1].rstrip()
            else:
                value = " ".join(args[3:])
            return PropertyAction(
                target=target,
                element=element,
                name=name,
                type_name=type_name,
                value=value,
                lineno=lineno,
            )

        if verb == "window":
            if args == ["show"]:
                return WindowShowAction(target=target, lineno=lineno)
            if args and args[0] == "move":
                return _compile_move(target, args[1:], lineno)
            raise ScriptSyntaxError("Expected 'window show' or 'window move ...'")

        raise ScriptSyntaxError(f"Unknown action verb: {verb}")


def _compile_move(target: str, args: list[str], lineno: int) -> WindowMoveAction:
    if len(args) != 9:
        raise ScriptSyntaxError(
            "Expected 'window move <clock> <t0> <x0> <y0> <t1> <x1> <y1> <easeX> <easeY>'"
        )
    clock = args[0]
    t0, x0, y0, t1, x1, y1 = (
        parse_number(token, what)
        for token, what in zip(args[1:7], ("t0", "x0", "y0", "t1", "x1", "y1"))
    )
    ease_x, ease_y = args[7], args[8]
    for ease in (ease_x, ease_y):
        if ease not in EASINGS:
            raise ScriptSyntaxError(f"Unknown easing function: {ease}")
    if t1 < t0:
        raise ScriptSyntaxError(f"Move ends before it starts: t1={t1:g} < t0={t0:g}")
    return WindowMoveAction(
        target=target,
        clock=clock,
        t0=t0,
        x0=x0,
        y0=y0,
        t1=t1,
        x1=x1,
        y1=y1,
        ease_x=ease_x,
        ease_y=ease_y,
        lineno=lineno,
    )


def _check_literal(type_name: str, value: str):
    try:
        coerce_value(type_name, value)
    except PropertyValueError as e:
        raise ScriptSyntaxError(f"Malformed {type_name} literal: {e}") from None


def _collect_defaults(bindings: list[PropertyBinding]) -> dict[int, str]:
    """Map parameter index to default, requiring defaults to be trailing."""
    defaults: dict[int, str] = {}
    referenced: set[int] = set()
    for b in bindings:
        if b.param is None:
            continue
        referenced.add(b.param.index)
        if b.param.default is None:
            continue
        prior = defaults.get(b.param.index)
        if prior is not None and prior != b.param.default:
            raise ScriptSyntaxError(f"Conflicting defaults for ${b.param.index}")
        defaults[b.param.index] = b.param.default

    if defaults:
        first = min(defaults)
        missing = [i for i in sorted(referenced) if i > first and i not in defaults]
        if missing:
            raise ScriptSyntaxError(
                f"Parameter ${missing[0]} needs a default because ${first} has one"
            )
    return defaults


def _arity_message(template: NodeTemplate, got: int) -> str:
    required, total = template.required_count, template.parameter_count
    if required == total:
        expected = str(total)
    else:
        expected = f"{required} to {total}"
    return f"{template.name} expects {expected} argument(s), got {got}"


def _split_blocks(lines: list[ScriptLine]) -> list[tuple[ScriptLine, list[ScriptLine]]]:
    """Split a script made only of raw...war blocks into (header, body) pairs."""
    blocks = []
    cursor = _Lines(lines)
    for line in cursor:
        blocks.append((line, ScriptCompiler._read_template_body(line, cursor)))
    return blocks


def compile_script(text: str, include_builtins: bool = True) -> Program:
    """Compile ``text`` with a fresh compiler."""
    return ScriptCompiler(include_builtins=include_builtins).compile(text)
