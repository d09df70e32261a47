"""
rushgen - the "generate" step of a monorepo workspace manager.

Builds one deduplicated npm install workspace from many projects, runs
``npm install`` against it and freezes the result into npm-shrinkwrap.json.
"""

__version__ = "0.1.0"

from .core.errors import (
    ConfigurationError,
    FilesystemError,
    ManifestError,
    ProcessExitError,
    RushGenError,
    ToolMissingError,
)
from .core.pipeline import GeneratePipeline, GenerateResult
from .infra.config import RushConfiguration, load_configuration

__all__ = [
    "ConfigurationError",
    "FilesystemError",
    "GeneratePipeline",
    "GenerateResult",
    "ManifestError",
    "ProcessExitError",
    "RushConfiguration",
    "RushGenError",
    "ToolMissingError",
    "load_configuration",
]
