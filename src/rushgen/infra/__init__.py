"""Infrastructure layer for configuration, filesystem, and child processes."""

from .config import RushConfiguration, find_config_file, load_configuration
from .fs import Recycler, RetryPolicy, create_folder_with_retry, delete_path
from .process import ToolResult, ToolRunner, run_tool

__all__ = [
    "find_config_file",
    "load_configuration",
    "create_folder_with_retry",
    "delete_path",
    "run_tool",
    "Recycler",
    "RetryPolicy",
    "RushConfiguration",
    "ToolResult",
    "ToolRunner",
]
