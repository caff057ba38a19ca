# release_deployer/utils/file_utils.py
"""File operation utilities"""

import json
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import aiofiles
from dotenv import dotenv_values


def format_size(size: int) -> str:
    """
    Format file size in human-readable format

    Args:
        size: Size in bytes

    Returns:
        Formatted size string
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PB"


def get_directory_size(directory: Path) -> int:
    """
    Total size of regular files under a directory, symlinks not followed

    Args:
        directory: Directory path

    Returns:
        Size in bytes
    """
    total = 0
    for path in directory.rglob('*'):
        if path.is_file() and not path.is_symlink():
            total += path.stat().st_size
    return total


def copy_tree(src: Path, dst: Path, exclude: Optional[Iterable[str]] = None) -> None:
    """
    Copy a directory tree, keeping symlinks as symlinks

    Args:
        src: Source directory
        dst: Destination (must not exist)
        exclude: Top-level entry names to leave out
    """
    excluded = set(exclude or [])
    src = Path(src)

    def ignore(directory: str, names):
        if Path(directory) == src:
            return [n for n in names if n in excluded]
        return []

    shutil.copytree(src, dst, symlinks=True, ignore=ignore)


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if it exists"""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def read_env_file(env_path: Path) -> Dict[str, Optional[str]]:
    """
    Parse a dotenv file

    Args:
        env_path: Path to the .env file

    Returns:
        Mapping of variables (empty when the file is missing)
    """
    if not env_path.exists():
        return {}
    return dict(dotenv_values(env_path))


async def write_json(path: Path, data: Dict[str, Any]) -> None:
    """Write a JSON document"""
    async with aiofiles.open(path, 'w') as f:
        await f.write(json.dumps(data, indent=2, sort_keys=True))


async def read_json(path: Path) -> Dict[str, Any]:
    """Read a JSON document, empty dict when missing or malformed"""
    if not path.exists():
        return {}
    async with aiofiles.open(path, 'r') as f:
        content = await f.read()
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return {}
