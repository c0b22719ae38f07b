"""Filesystem helpers rooted at a configurable prefix.

All paths are given as absolute host paths (``/etc/fstab``) and resolved
below ``root``, which is ``/`` on a real host.
"""
import logging
import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger("kubeprov.host.files")

PathLike = Union[str, Path]


class FileSystem:
    """File operations used by step bodies and their compensations."""

    def __init__(self, root: PathLike = '/', dry_run: bool = False):
        self.root = Path(root)
        self.dry_run = dry_run

    def path(self, path: PathLike) -> Path:
        path = Path(path)
        if self.root == Path('/'):
            return path
        return self.root / path.relative_to(path.anchor)

    def exists(self, path: PathLike) -> bool:
        return self.path(path).exists()

    def read_text(self, path: PathLike) -> str:
        return self.path(path).read_text(encoding='utf-8')

    def _skip(self, action: str, path: PathLike) -> bool:
        if self.dry_run:
            logger.info("DRY RUN: would %s %s", action, path)
        return self.dry_run

    def write_text(self, path: PathLike, content: str, mode: Optional[int] = None) -> None:
        if self._skip('write', path):
            return
        target = self.path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding='utf-8')
        if mode is not None:
            target.chmod(mode)

    def append_text(self, path: PathLike, content: str) -> None:
        if self._skip('append to', path):
            return
        target = self.path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'a', encoding='utf-8') as f:
            f.write(content)

    def replace_in_file(self, path: PathLike, pattern: str, replacement: str) -> int:
        """Regex-substitute every match in a file, like ``sed -i``. Returns the count."""
        if self._skip('edit', path):
            return 0
        target = self.path(path)
        text, count = re.subn(pattern, replacement, target.read_text(encoding='utf-8'), flags=re.MULTILINE)
        target.write_text(text, encoding='utf-8')
        return count

    def backup(self, path: PathLike, suffix: str = '.backup') -> str:
        """Copy ``path`` next to itself with ``suffix``. Returns the backup host path."""
        backup = f"{path}{suffix}"
        if not self._skip('back up', path):
            shutil.copy2(self.path(path), self.path(backup))
        return backup

    def copy(self, source: PathLike, destination: PathLike) -> None:
        if self._skip('copy to', destination):
            return
        target = self.path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.path(source), target)

    def move(self, source: PathLike, destination: PathLike) -> None:
        if self._skip('move to', destination):
            return
        shutil.move(str(self.path(source)), str(self.path(destination)))

    def makedirs(self, path: PathLike) -> None:
        if self._skip('create', path):
            return
        self.path(path).mkdir(parents=True, exist_ok=True)

    def remove(self, path: PathLike) -> None:
        if self._skip('remove', path):
            return
        self.path(path).unlink(missing_ok=True)

    def remove_tree(self, path: PathLike) -> None:
        if self._skip('remove', path):
            return
        target = self.path(path)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()

    def remove_glob(self, directory: PathLike, pattern: str) -> List[str]:
        """Remove entries of ``directory`` matching ``pattern``. Returns their names."""
        target = self.path(directory)
        if not target.is_dir():
            return []
        removed = []
        for entry in sorted(target.glob(pattern)):
            removed.append(entry.name)
            self.remove_tree(Path(directory) / entry.name)
        return removed

    def copy_contents(self, source_dir: PathLike, destination_dir: PathLike) -> List[str]:
        """Copy the regular files of one directory into another, overwriting."""
        source = self.path(source_dir)
        if not source.is_dir():
            return []
        copied = []
        for entry in sorted(source.iterdir()):
            if entry.is_file():
                self.copy(Path(source_dir) / entry.name, Path(destination_dir) / entry.name)
                copied.append(entry.name)
        return copied

    def read_env_file(self, path: PathLike) -> Dict[str, str]:
        """Parse a ``KEY=value`` file such as ``/etc/os-release``."""
        values = {}
        for line in self.read_text(path).splitlines():
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, _, value = line.partition('=')
            values[key.strip()] = value.strip().strip('"\'')
        return values
