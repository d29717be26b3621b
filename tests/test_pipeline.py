"""Tests for sub-pipeline parsing and port derivation."""

import pytest

from livemix.errors import ScriptSyntaxError
from livemix.script.pipeline import Medium, PortDirection, derive_ports, parse_pipeline


class TestParsePipeline:
    """Tests for parse_pipeline."""

    def test_linear_chain(self):
        layout = parse_pipeline("proxysrc name=video_in ! videoflip name=flip ! proxysink name=video_out")

        assert layout.element_names() == ["video_in", "flip", "video_out"]
        assert [(link.src, link.dst) for link in layout.links] == [
            ("video_in", "flip"),
            ("flip", "video_out"),
        ]
        assert layout.element("flip").kind == "videoflip"

    def test_unnamed_elements_get_numbered_names(self):
        layout = parse_pipeline("filesrc ! decodebin ! audioconvert ! audioconvert")

        assert layout.element_names() == ["filesrc0", "decodebin0", "audioconvert0", "audioconvert1"]

    def test_properties_attach_to_last_element(self):
        layout = parse_pipeline("filesrc name=src location=/tmp/a.mp3 ! decodebin")

        assert layout.element("src").properties == {"location": "/tmp/a.mp3"}

    def test_back_references_start_branches(self):
        layout = parse_pipeline(
            "filesrc ! decodebin name=demux "
            "demux. ! videoconvert ! proxysink name=video_out "
            "demux. ! audioconvert ! proxysink name=audio_out"
        )

        assert layout.downstream("demux") == ["videoconvert0", "audioconvert0"]

    @pytest.mark.parametrize(
        "description",
        [
            "",
            "! proxysink",
            "proxysrc !",
            "proxysrc ! ! proxysink",
            "name=orphan proxysrc",
            "proxysrc name=a ! proxysink name=a",
            "missing. ! proxysink",
        ],
    )
    def test_malformed_descriptions(self, description):
        with pytest.raises(ScriptSyntaxError):
            parse_pipeline(description)


class TestDerivePorts:
    """Tests for exported port derivation."""

    def test_proxy_elements_become_ports(self):
        ports = derive_ports(parse_pipeline("proxysrc name=in ! identity ! proxysink name=out"))

        assert set(ports) == {"in", "out"}
        assert ports["in"].direction == PortDirection.IN
        assert ports["out"].direction == PortDirection.OUT
        # No audio/video hint anywhere: untyped
        assert ports["in"].medium is None

    def test_medium_from_port_name(self):
        ports = derive_ports(parse_pipeline("proxysrc name=audio_in ! identity ! fakesink"))

        assert ports["audio_in"].medium == Medium.AUDIO

    def test_medium_from_neighbouring_elements(self):
        ports = derive_ports(
            parse_pipeline("proxysrc name=a ! videoconvert ! videobox ! proxysink name=b")
        )

        assert ports["a"].medium == Medium.VIDEO
        assert ports["b"].medium == Medium.VIDEO

    def test_untyped_port_is_compatible_with_both(self):
        ports = derive_ports(
            parse_pipeline("proxysrc name=x ! identity ! proxysink name=audio_out")
        )

        assert ports["x"].compatible_with(ports["audio_out"])
