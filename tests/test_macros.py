"""Tests for macro expansion."""

import pytest

from livemix.errors import ArityError, DanglingReferenceError, TypeMismatchError
from livemix.graph.macros import MacroExpander
from livemix.script.compiler import compile_script
from livemix.script.values import VideoOrientation

from .script_helpers import FLIPPER

BOX = """\
raw box 2 proxysrc name=video_in ! videobox name=crop ! proxysink name=video_out
crop left int $1
crop top int $2=10
crop label string hello
war
"""


@pytest.fixture
def expander():
    return MacroExpander(compile_script(FLIPPER + BOX).templates)


class TestExpand:
    """Tests for MacroExpander.expand."""

    def test_defaults_fill_omitted_arguments(self, expander):
        expansion = expander.expand("box", ["5"])

        crop = expansion.element_settings["crop"]
        assert expansion.args == ["5", "10"]
        assert crop["left"].value == 5
        assert crop["top"].value == 10
        assert crop["label"].value == "hello"

    def test_explicit_arguments_override_defaults(self, expander):
        expansion = expander.expand("box", ["5", "7"])

        assert expansion.element_settings["crop"]["top"].value == 7

    def test_enum_binding(self, expander):
        expansion = expander.expand("flipper", ["90l"])

        assert expansion.element_settings["flip"]["method"].value == VideoOrientation.ROTATE_90L

    def test_node_level_settings(self, expander):
        expansion = expander.expand("xoutput", ["1", "2", "30", "40"])

        settings = {name: v.value for name, v in expansion.node_settings.items()}
        assert settings == {"gtktag": "window", "x": 1, "y": 2, "width": 30, "height": 40}
        assert expansion.element_settings == {}

    def test_ports_come_from_the_template(self, expander):
        assert set(expander.expand("flipper", []).ports) == {"video_in", "video_out"}

    @pytest.mark.parametrize("args", [[], ["1", "2", "3"]])
    def test_arity(self, expander, args):
        with pytest.raises(ArityError, match="box expects 1 to 2 argument"):
            expander.expand("box", args)

    def test_type_mismatch(self, expander):
        with pytest.raises(TypeMismatchError, match=r"\$1 for crop.left"):
            expander.expand("box", ["wide"])

    def test_unknown_template(self, expander):
        with pytest.raises(DanglingReferenceError):
            expander.expand("nothing", [])
