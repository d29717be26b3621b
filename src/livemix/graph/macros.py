"""Macro expansion: binds ``new`` arguments onto a template's property bindings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import ArityError, DanglingReferenceError, PropertyValueError, TypeMismatchError
from ..script.pipeline import PortSpec
from ..script.schema import NodeTemplate
from ..script.values import TypedValue, coerce_value

logger = logging.getLogger(__name__)


@dataclass
class Expansion:
    """A template bound to concrete arguments.

    ``element_settings`` holds initial properties per sub-element,
    ``node_settings`` the node-level (``raw``) settings such as window
    geometry.
    """

    template: NodeTemplate
    args: list[str]
    element_settings: dict[str, dict[str, TypedValue]] = field(default_factory=dict)
    node_settings: dict[str, TypedValue] = field(default_factory=dict)

    @property
    def ports(self) -> dict[str, PortSpec]:
        return dict(self.template.exports)


class MacroExpander:
    """Resolves template names and substitutes positional arguments."""

    def __init__(self, templates: dict[str, NodeTemplate]):
        self._templates = dict(templates)

    def template(self, name: str) -> NodeTemplate:
        template = self._templates.get(name)
        if template is None:
            raise DanglingReferenceError(f"Unknown template: {name}")
        return template

    def bind_arguments(self, template: NodeTemplate, args: list[str]) -> list[str]:
        """Check the argument count and append defaults for omitted trailing args.

        Raises:
            ArityError: if too few or too many arguments are given
        """
        required, total = template.required_count, template.parameter_count
        if not required <= len(args) <= total:
            expected = str(total) if required == total else f"{required} to {total}"
            raise ArityError(
                f"{template.name} expects {expected} argument(s), got {len(args)}"
            )
        bound = list(args)
        for index in range(len(args) + 1, total + 1):
            # Gaps in the $N numbering have neither value nor default
            bound.append(template.defaults.get(index, ""))
        return bound

    def expand(self, template_name: str, args: list[str]) -> Expansion:
        """Bind ``args`` onto ``template_name`` and type-check every binding.

        Raises:
            DanglingReferenceError: if the template does not exist
            ArityError: on a wrong argument count
            TypeMismatchError: if an argument does not fit its binding's type
        """
        template = self.template(template_name)
        bound = self.bind_arguments(template, args)
        expansion = Expansion(template=template, args=bound)

        for binding in template.bindings:
            raw = binding.resolve(bound)
            try:
                value = coerce_value(binding.type_name, raw)
            except PropertyValueError as e:
                where = f"${binding.param.index}" if binding.param else "literal"
                raise TypeMismatchError(
                    f"{template.name}: {where} for {binding.element}.{binding.name}: {e}"
                ) from None

            if binding.is_external:
                expansion.node_settings[binding.name] = value
            else:
                expansion.element_settings.setdefault(binding.element, {})[binding.name] = value

        return expansion
