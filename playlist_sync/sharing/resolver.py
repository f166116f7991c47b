"""
Remote-first, local-fallback read strategy.

Every read path of the coordinator (by code, listing, by id) follows the
same steps:

    1. If the remote store is available, ask it first.
    2. On a remote hit, optionally warm the local cache, then return it.
    3. On a miss, or if the remote tier is unavailable or fails, ask the
       local store.

Remote failures never escape from resolve(); they are logged and kept on
the Resolution so callers can report a degraded result.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from playlist_sync.core.exceptions import RemoteError
from playlist_sync.core.logger import get_logger
from playlist_sync.remote.firestore import FirestoreRemoteStore


logger = get_logger(__name__)

T = TypeVar("T")

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """
    Outcome of a tiered lookup.

    Attributes:
        value: The found value, or None when both tiers missed.
        source: "remote", "local", or None on a miss.
        remote_error: The remote failure that forced a fallback, if any.
    """
    value: T | None
    source: str | None
    remote_error: RemoteError | None = None

    @property
    def found(self) -> bool:
        return self.source is not None


def _is_hit(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


class TieredResolver:
    """
    Composes the remote and local backends for reads.

    Example:
        resolver = TieredResolver(remote)
        resolution = await resolver.resolve(
            remote=lambda: remote.get_by_share_code(code),
            local=lambda: store.get_by_code(code),
            warm=store.put,
        )
    """

    def __init__(self, remote: FirestoreRemoteStore | None) -> None:
        self._remote = remote

    @property
    def remote_available(self) -> bool:
        return self._remote is not None and self._remote.is_available()

    async def resolve(
        self,
        remote: Callable[[], Awaitable[T | None]],
        local: Callable[[], T | None],
        warm: Callable[[T], Awaitable[object]] | None = None
    ) -> Resolution[T]:
        """
        Run the lookup against both tiers.

        Args:
            remote: Remote lookup; only called when the remote store is
                    available. None or an empty list counts as a miss.
            local: Local lookup; None or an empty list counts as a miss.
            warm: Called with a remote hit before it is returned.

        Raises:
            LocalStoreError: If warming the local cache fails.
        """
        remote_error: RemoteError | None = None

        if self.remote_available:
            try:
                value = await remote()
            except RemoteError as e:
                logger.warning(f"Remote lookup failed, using local data: {e.message}")
                remote_error = e
            else:
                if _is_hit(value):
                    if warm is not None:
                        await warm(value)
                    return Resolution(value, SOURCE_REMOTE)

        value = local()
        if _is_hit(value):
            return Resolution(value, SOURCE_LOCAL, remote_error)
        return Resolution(None, None, remote_error)
