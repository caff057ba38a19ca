# release_deployer/utils/__init__.py
"""Utility functions for release-deployer"""

from .file_utils import (
    format_size,
    get_directory_size,
    copy_tree,
    remove_path,
    read_env_file,
    write_json,
    read_json,
)

from .async_utils import (
    run_async,
    sync_to_async,
    run_command,
)

__all__ = [
    # File utilities
    'format_size',
    'get_directory_size',
    'copy_tree',
    'remove_path',
    'read_env_file',
    'write_json',
    'read_json',

    # Async utilities
    'run_async',
    'sync_to_async',
    'run_command',
]
