"""livemix - a control plane for live audio/video composition timelines."""

from livemix.config import RuntimeConfig, load_config
from livemix.errors import (
    ActionError,
    CompileError,
    LiveMixError,
    StructuralError,
)
from livemix.graph.collaborator import Collaborator, RecordingCollaborator
from livemix.runtime import LiveMixRuntime
from livemix.script.compiler import ScriptCompiler, compile_script
from livemix.script.validate import validate_program

__version__ = "0.1.0"

__all__ = [
    "ActionError",
    "Collaborator",
    "CompileError",
    "LiveMixError",
    "LiveMixRuntime",
    "RecordingCollaborator",
    "RuntimeConfig",
    "ScriptCompiler",
    "StructuralError",
    "compile_script",
    "load_config",
    "validate_program",
]
