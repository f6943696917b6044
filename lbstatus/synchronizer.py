import asyncio
import logging
from collections import Counter
from enum import Enum
from typing import Iterable, List, Optional, Set

from . import class_filter
from .cache import ApplyResult, PatchFn, StatusCache
from .errors import PatchFailedError
from .models import Address, ResourceKind, RoutingResource, RoutingResourceKey
from .register import AddressRegister

logger = logging.getLogger(__name__)


class Outcome(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    UNTRACKED = "untracked"
    FAILED = "failed"


_OUTCOMES = {
    ApplyResult.APPLIED: Outcome.APPLIED,
    ApplyResult.UNCHANGED: Outcome.UNCHANGED,
    ApplyResult.NOT_OWNED: Outcome.SKIPPED,
    ApplyResult.UNTRACKED: Outcome.UNTRACKED,
}


class StatusSynchronizer:
    """
    Copies the AddressRegister value into the status of owned routing resources.

    Driven by per-resource watch events and by address-change re-syncs. Both
    paths end in ``StatusCache.apply_if_changed``, so an unchanged status is
    never written twice.
    """

    ingress_class: str
    claim_default_class: bool

    def __init__(
        self,
        register: AddressRegister,
        cache: StatusCache,
        patch_fn: PatchFn,
        ingress_class: str = "",
        claim_default_class: bool = False,
    ):
        self.register = register
        self.cache = cache
        self.patch_fn = patch_fn
        self.ingress_class = ingress_class
        self.claim_default_class = claim_default_class

    def owns(self, resource: RoutingResource) -> bool:
        return class_filter.matches(resource.ingress_class, self.ingress_class, self.claim_default_class)

    def desired_status(self) -> Address:
        return tuple(self.register.get())

    async def reconcile(self, resource: RoutingResource) -> Outcome:
        """
        Brings one tracked resource's status in line with the register.

        Args:
            resource: The resource, as last observed.

        Returns:
            What happened to the resource.

        Raises:
            PatchFailedError: The status write failed.
        """
        if not self.owns(resource):
            logger.debug(
                f"Skipping {resource.key}: class '{resource.ingress_class}' "
                f"does not match '{self.ingress_class}'"
            )
            return Outcome.SKIPPED
        # The cached class may change while this call waits for the key lock,
        # so ownership is checked again under it.
        result = await self.cache.apply_if_changed(resource.key, self.desired_status(), self.patch_fn, owns=self.owns)
        if result is ApplyResult.NOT_OWNED:
            logger.debug(f"Skipping {resource.key}: class changed to one this controller does not own")
        elif result is ApplyResult.UNCHANGED:
            logger.debug(f"Status of {resource.key} already current")
        return _OUTCOMES[result]

    async def _reconcile_logged(self, resource: RoutingResource) -> Outcome:
        try:
            return await self.reconcile(resource)
        except PatchFailedError as e:
            logger.error(f"{e}. Will retry on the next event for {e.key}.")
            return Outcome.FAILED

    async def on_resource_add(self, resource: RoutingResource) -> Outcome:
        if not self.owns(resource):
            # A resource that stopped matching keeps whatever status it has,
            # but its new class must be visible to later re-syncs.
            if resource.key in self.cache:
                self.cache.observe(resource)
            return await self.reconcile(resource)
        return await self._reconcile_logged(self.cache.observe(resource))

    async def on_resource_update(self, old: Optional[RoutingResource], new: RoutingResource) -> Outcome:
        return await self.on_resource_add(new)

    async def on_resource_delete(self, resource: RoutingResource) -> None:
        if self.cache.remove(resource.key) is not None:
            logger.debug(f"Stopped tracking {resource.key}")

    async def _reconcile_key(self, key: RoutingResourceKey) -> Outcome:
        snapshot = self.cache.get(key)
        if snapshot is None:
            return Outcome.UNTRACKED
        return await self._reconcile_logged(snapshot)

    async def on_address_changed(self) -> Counter:
        """
        Re-syncs every tracked resource against the current address.

        A failure on one resource does not stop the others.

        Returns:
            The number of resources per outcome.
        """
        keys = self.cache.keys()
        outcomes = Counter(await asyncio.gather(*(self._reconcile_key(key) for key in keys)))
        summary = ", ".join(f"{outcome.value}={count}" for outcome, count in outcomes.items())
        logger.info(f"Re-synced {len(keys)} resources ({summary or 'nothing tracked'})")
        return outcomes

    def prune(self, kind: ResourceKind, live: Set[RoutingResourceKey]) -> List[RoutingResourceKey]:
        """
        Forgets tracked resources of one kind that no longer exist.

        Used after a watch reconnects, since deletions made while it was down
        never arrive as events.

        Args:
            kind: The kind that was listed.
            live: Keys of every resource of that kind currently in the cluster.

        Returns:
            The keys that were dropped.
        """
        stale = [key for key in self.cache.keys() if key.kind is kind and key not in live]
        for key in stale:
            self.cache.remove(key)
            logger.info(f"Stopped tracking {key}, deleted while the watch was down")
        return stale

    async def rebuild(self, resources: Iterable[RoutingResource]) -> Counter:
        """
        Replays the current set of routing resources into an empty cache.

        Every owned resource is seeded, then one re-sync brings them all to
        the current address.

        Args:
            resources: Every routing resource currently in the cluster.

        Returns:
            The outcome counts of the re-sync.

        Raises:
            DuplicateSeedError: A resource was listed twice, or the cache was
                not empty.
        """
        for resource in resources:
            if self.owns(resource):
                self.cache.seed_or_raise(resource.key, resource)
        return await self.on_address_changed()
