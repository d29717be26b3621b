"""Shared pytest fixtures."""

import pytest

from livemix.config import RuntimeConfig
from livemix.graph.collaborator import RecordingCollaborator
from livemix.runtime import LiveMixRuntime
from livemix.script.compiler import ScriptCompiler, compile_script


@pytest.fixture
def compiler():
    return ScriptCompiler()


@pytest.fixture
def recorder():
    return RecordingCollaborator()


@pytest.fixture
def config():
    return RuntimeConfig()


@pytest.fixture
def make_runtime(recorder, config):
    """Build a runtime for a script against the recording collaborator."""

    def _make(text: str, runtime_config: RuntimeConfig | None = None) -> LiveMixRuntime:
        runtime = LiveMixRuntime(compile_script(text), recorder, runtime_config or config)
        runtime.build()
        return runtime

    return _make
