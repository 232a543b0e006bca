"""Script generation for operations too wide for a direct call."""

from .script_generator import ScriptGenerator
from .store import ScriptStore

__all__ = ["ScriptGenerator", "ScriptStore"]
