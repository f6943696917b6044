import asyncio
import contextlib
import dataclasses
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import DuplicateSeedError, PatchFailedError
from .models import Address, RoutingResource, RoutingResourceKey, format_address

logger = logging.getLogger(__name__)

PatchFn = Callable[[RoutingResource, Address], Awaitable[None]]
OwnsFn = Callable[[RoutingResource], bool]


class ApplyResult(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    NOT_OWNED = "not_owned"
    UNTRACKED = "untracked"


class StatusCache:
    """
    Write-through record of the last status applied to each routing resource.

    Map operations never await, so they are atomic for the event loop. Each
    key additionally owns an ``asyncio.Lock`` that is held across the
    ownership check, compare, patch and record steps of
    ``apply_if_changed``; writes to different keys run in parallel. A key's
    lock only exists while some caller is using it.
    """

    _snapshots: Dict[RoutingResourceKey, RoutingResource]
    _locks: Dict[RoutingResourceKey, Tuple[asyncio.Lock, int]]

    def __init__(self):
        self._snapshots = {}
        self._locks = {}

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, key: RoutingResourceKey) -> bool:
        return key in self._snapshots

    def keys(self) -> List[RoutingResourceKey]:
        return list(self._snapshots)

    def get(self, key: RoutingResourceKey) -> Optional[RoutingResource]:
        return self._snapshots.get(key)

    def seed(self, key: RoutingResourceKey, snapshot: RoutingResource) -> bool:
        """Inserts a snapshot, returning False if the key is already cached."""
        if key in self._snapshots:
            return False
        self._snapshots[key] = snapshot
        return True

    def seed_or_raise(self, key: RoutingResourceKey, snapshot: RoutingResource) -> None:
        if not self.seed(key, snapshot):
            raise DuplicateSeedError(key)

    def observe(self, resource: RoutingResource) -> RoutingResource:
        """
        Records the latest object body seen for a resource.

        A known key keeps its last applied status while its class and body
        are refreshed; an unknown key is inserted as observed.

        Args:
            resource: The resource as delivered by an add or update event.

        Returns:
            The cached snapshot.
        """
        cached = self._snapshots.get(resource.key)
        if cached is not None:
            resource = dataclasses.replace(resource, status=cached.status)
        self._snapshots[resource.key] = resource
        return resource

    def remove(self, key: RoutingResourceKey) -> Optional[RoutingResource]:
        return self._snapshots.pop(key, None)

    @contextlib.asynccontextmanager
    async def _locked(self, key: RoutingResourceKey) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    async def apply_if_changed(
        self,
        key: RoutingResourceKey,
        desired: Address,
        patch_fn: PatchFn,
        owns: Optional[OwnsFn] = None,
    ) -> ApplyResult:
        """
        Patches a resource's status unless the cache already holds ``desired``.

        Args:
            key: The resource to update.
            desired: The status address to apply.
            patch_fn: Coroutine function performing the API write.
            owns: Checked against the cached snapshot once the key is locked;
                nothing is written when it returns False.

        Returns:
            APPLIED if a patch was issued and recorded, UNCHANGED if the status
            was already current, NOT_OWNED if ``owns`` rejected the snapshot,
            UNTRACKED if the key is not cached.

        Raises:
            PatchFailedError: The write failed; the cache is left unchanged.
        """
        desired = tuple(desired)
        if key not in self._snapshots:
            return ApplyResult.UNTRACKED

        async with self._locked(key):
            snapshot = self._snapshots.get(key)
            if snapshot is None:
                return ApplyResult.UNTRACKED
            if owns is not None and not owns(snapshot):
                return ApplyResult.NOT_OWNED
            if snapshot.status == desired:
                return ApplyResult.UNCHANGED

            try:
                await patch_fn(snapshot, desired)
            except Exception as e:
                raise PatchFailedError(key, e) from e

            # The resource may have been deleted while the patch was in flight.
            current = self._snapshots.get(key)
            if current is not None:
                self._snapshots[key] = dataclasses.replace(current, status=desired)
            logger.info(f"Patched status of {key} to '{format_address(desired)}'")
            return ApplyResult.APPLIED
