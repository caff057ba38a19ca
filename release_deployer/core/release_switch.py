"""Atomic promotion of a release through the current symlink"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from .layout import LayoutManager
from ..api.exceptions import SwitchFailure
from ..constants import TEMP_LINK_SUFFIX, DEFAULT_KEEP_RELEASES, MSG_LINK_UPDATED
from ..utils.file_utils import remove_path

logger = logging.getLogger(__name__)


class ReleaseSwitch:
    """Flips ``current`` between releases with a single rename"""

    def __init__(self, layout: LayoutManager):
        self.layout = layout

    def promote(self, new_release_path: Path) -> Optional[Path]:
        """Point ``current`` at a release

        A temporary link is created beside ``current`` and renamed over it,
        so ``current`` is never absent.

        Args:
            new_release_path: Release directory to make live

        Returns:
            Previous target, or None on first deployment

        Raises:
            SwitchFailure: If the pointer could not be replaced. ``current``
                is unchanged in that case.
        """
        new_release_path = Path(new_release_path)
        if not new_release_path.is_dir():
            raise SwitchFailure(f"Release directory does not exist: {new_release_path}")

        current_link = self.layout.current_link
        previous = self.layout.resolve_current_release()
        temp_link = current_link.with_name(current_link.name + TEMP_LINK_SUFFIX)

        # Relative target keeps the app root relocatable
        try:
            target = Path(os.path.relpath(new_release_path, current_link.parent))
        except ValueError:
            target = new_release_path

        try:
            if temp_link.exists() or temp_link.is_symlink():
                temp_link.unlink()
            temp_link.symlink_to(target, target_is_directory=True)
            os.replace(temp_link, current_link)
        except OSError as e:
            try:
                if temp_link.is_symlink():
                    temp_link.unlink()
            except OSError:
                logger.warning(f"Could not remove temporary link {temp_link}")
            raise SwitchFailure(f"Failed to update {current_link}: {e}") from e

        logger.info(MSG_LINK_UPDATED.format(link=current_link, target=target))
        return previous

    def prune_releases(self, keep: int = DEFAULT_KEEP_RELEASES) -> List[str]:
        """Remove old release directories

        Keeps the newest ``keep`` releases and always the live one.

        Returns:
            Removed release ids
        """
        current_id = self.layout.current_release_id()
        releases = self.layout.list_releases()

        removed = []
        for release_id in releases[keep:]:
            if release_id == current_id:
                continue
            path = self.layout.release_path(release_id)
            try:
                remove_path(path)
            except OSError as e:
                logger.warning(f"Could not remove old release {path}: {e}")
                continue
            removed.append(release_id)

        if removed:
            logger.info(f"Pruned {len(removed)} old release(s): {', '.join(removed)}")

        return removed
