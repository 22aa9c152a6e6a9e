"""
Rewatch Watch Tree Manager.

Recursive registration of a directory tree with the watch subscription.
Requires Python 3.11+.
"""

import os
import stat

from utils.logger import LoggerMixin
from watcher.exclude import ExcludeMatcher
from watcher.subscription import WatchSubscription


def is_dir(path: str) -> bool:
    """
    Check whether ``path`` is a directory, following symlinks.

    A path that does not exist is simply not a directory.

    Raises:
        OSError: Stat failed for a reason other than the path being missing
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    return stat.S_ISDIR(st.st_mode)


class WatchTreeManager(LoggerMixin):
    """
    Keeps every non-excluded directory under a root registered.

    Registration tolerates a racing filesystem: anything that vanishes
    between listing and registering is skipped without complaint.
    """

    def __init__(self, subscription: WatchSubscription, exclude: ExcludeMatcher) -> None:
        self._subscription = subscription
        self._exclude = exclude

    def register_subtree(self, path: str) -> None:
        """
        Register ``path`` and every non-excluded directory below it.

        Children are registered before their parent, so a child that fails
        to register never prevents the parent from being watched.
        """
        try:
            with os.scandir(path) as it:
                entries = [entry.name for entry in it]
        except FileNotFoundError:
            return
        except OSError as e:
            self.log.warning("list_directory_failed", path=path, error=str(e))
            entries = []

        for name in sorted(entries):
            sub = os.path.join(path, name)
            if self._exclude.matches(sub):
                self.log.debug("excluding_path", path=sub)
                continue
            try:
                if is_dir(sub):
                    self.register_subtree(sub)
            except OSError as e:
                self.log.warning("watch_failed", path=sub, error=str(e))

        self.register(path)

    def register(self, path: str) -> None:
        """Register a single directory; a vanished path is a no-op."""
        self.log.debug("watching_directory", path=path)
        try:
            self._subscription.add(path)
        except FileNotFoundError:
            self.log.debug("directory_vanished", path=path)
        except OSError as e:
            self.log.warning("watch_failed", path=path, error=str(e))

    @property
    def watched(self) -> set[str]:
        return self._subscription.watched
