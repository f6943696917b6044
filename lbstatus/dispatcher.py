import logging
from typing import Any, Dict, Optional, Union

from .models import LoadBalancerService, ResourceKind, RoutingResource
from .synchronizer import StatusSynchronizer
from .watcher import ServiceAddressWatcher

logger = logging.getLogger(__name__)

KINDS_BY_NAME = {kind.value: kind for kind in ResourceKind}

TypedObject = Union[LoadBalancerService, RoutingResource]


def classify(body: Dict[str, Any], kind: Optional[str] = None) -> Optional[TypedObject]:
    """
    Turns an untyped object body into the model the engine understands.

    Args:
        body: The object body as delivered by the API.
        kind: The object kind, when the body itself lacks one (list items).

    Returns:
        A LoadBalancerService or RoutingResource, or None for other kinds.
    """
    kind = kind or body.get("kind")
    if kind == "Service":
        return LoadBalancerService.from_raw(body)
    if kind in KINDS_BY_NAME:
        return RoutingResource.from_raw(KINDS_BY_NAME[kind], body)
    return None


class EventDispatcher:
    """
    Routes watch events to the Service watcher or the status synchronizer.

    Holds no state of its own: the previous object handed to an update hook
    is the synchronizer's tracked snapshot, or None.
    """

    def __init__(self, watcher: ServiceAddressWatcher, synchronizer: StatusSynchronizer):
        self.watcher = watcher
        self.synchronizer = synchronizer

    async def dispatch(self, event_type: str, body: Dict[str, Any], kind: Optional[str] = None) -> None:
        obj = classify(body, kind)
        if obj is None:
            logger.debug(f"Ignoring {event_type} event for unsupported kind '{kind or body.get('kind')}'")
            return

        if event_type == "ADDED":
            await self._on_add(obj)
        elif event_type == "MODIFIED":
            await self._on_update(obj)
        elif event_type == "DELETED":
            await self._on_delete(obj)
        else:
            logger.debug(f"Ignoring '{event_type}' event for {obj.namespace}/{obj.name}")

    async def _on_add(self, obj: TypedObject) -> None:
        if isinstance(obj, LoadBalancerService):
            self.watcher.on_add(obj)
        elif isinstance(obj, RoutingResource):
            await self.synchronizer.on_resource_add(obj)
        else:
            raise TypeError(f"Unsupported object type: {type(obj)!r}")

    async def _on_update(self, new: TypedObject) -> None:
        if isinstance(new, LoadBalancerService):
            self.watcher.on_update(None, new)
        elif isinstance(new, RoutingResource):
            old = self.synchronizer.cache.get(new.key)
            await self.synchronizer.on_resource_update(old, new)
        else:
            raise TypeError(f"Unsupported object type: {type(new)!r}")

    async def _on_delete(self, obj: TypedObject) -> None:
        if isinstance(obj, LoadBalancerService):
            self.watcher.on_delete(obj)
        elif isinstance(obj, RoutingResource):
            await self.synchronizer.on_resource_delete(obj)
        else:
            raise TypeError(f"Unsupported object type: {type(obj)!r}")
