import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import kr8s
from kr8s.asyncio.objects import Service

from . import config
from .cache import StatusCache
from .dispatcher import EventDispatcher
from .kr8s_objects import patch_status
from .models import LoadBalancerService, ResourceKind, RoutingResource
from .register import AddressRegister
from .synchronizer import StatusSynchronizer
from .watcher import ServiceAddressWatcher

logger = logging.getLogger(__name__)


async def resync_worker(event: asyncio.Event, synchronizer: StatusSynchronizer, debounce_delay: float) -> None:
    """
    Waits for an address change, then re-syncs every tracked resource.

    Args:
        event: The event set by the Service watcher.
        synchronizer: The synchronizer to run the re-sync on.
        debounce_delay: Seconds to wait so bursts collapse into one pass.
    """
    while True:
        await event.wait()
        logger.info(f"Address change detected, waiting {debounce_delay}s for debounce period...")
        await asyncio.sleep(debounce_delay)
        event.clear()

        try:
            await synchronizer.on_address_changed()
        except Exception as e:
            logger.error(f"Error during re-sync: {e}")


async def refresh_service(watcher: ServiceAddressWatcher) -> None:
    """
    Reads the front-end Service directly and publishes its address.

    Publishes an empty address when the Service no longer exists, which also
    covers a deletion that happened while its watch was down.

    Args:
        watcher: The watcher of the Service.
    """
    try:
        svc = await Service.get(watcher.service_name, namespace=watcher.service_namespace)
    except kr8s.NotFoundError:
        logger.warning(
            f"Service '{watcher.service_namespace}/{watcher.service_name}' not found, "
            "no address will be published until it appears"
        )
        watcher.on_delete(LoadBalancerService(watcher.service_namespace, watcher.service_name))
        return
    watcher.on_add(LoadBalancerService.from_raw(svc.raw))


async def prune_deleted(synchronizer: StatusSynchronizer, kind: ResourceKind) -> None:
    """Lists one kind and forgets tracked resources that are gone."""
    live = {resource.key for resource in await list_resources([kind])}
    synchronizer.prune(kind, live)


async def service_watcher(dispatcher: EventDispatcher, retry_delay: float) -> None:
    """
    Watches the front-end Service and feeds its events to the dispatcher.

    Args:
        dispatcher: The event dispatcher.
        retry_delay: Seconds to wait before reconnecting a failed watch.
    """
    watcher = dispatcher.watcher
    reconnecting = False
    while True:
        try:
            # Events missed while disconnected are never replayed.
            if reconnecting:
                await refresh_service(watcher)
            reconnecting = True
            async for evt, svc in kr8s.asyncio.watch(
                "services", namespace=watcher.service_namespace, field_selector=f"metadata.name={watcher.service_name}"
            ):
                logger.debug(f"Service '{svc.name}' event: '{evt}'")
                await dispatcher.dispatch(evt, svc.raw, "Service")
        except Exception as e:
            logger.error(f"Error in Service watch loop: {e}. Reconnecting in {retry_delay} seconds.")
            await asyncio.sleep(retry_delay)


async def resource_watcher(dispatcher: EventDispatcher, kind: ResourceKind, retry_delay: float) -> None:
    """
    Watches one routing resource kind across all namespaces.

    Args:
        dispatcher: The event dispatcher.
        kind: The kind to watch.
        retry_delay: Seconds to wait before reconnecting a failed watch.
    """
    reconnecting = False
    while True:
        try:
            # Deletions missed while disconnected are never replayed.
            if reconnecting:
                await prune_deleted(dispatcher.synchronizer, kind)
            reconnecting = True
            async for evt, obj in kr8s.asyncio.watch(kind.plural, namespace=kr8s.ALL):
                logger.debug(f"{kind.value} '{obj.namespace}/{obj.name}' event: '{evt}'")
                await dispatcher.dispatch(evt, obj.raw, kind.value)
        except Exception as e:
            logger.error(f"Error in {kind.value} watch loop: {e}. Reconnecting in {retry_delay} seconds.")
            await asyncio.sleep(retry_delay)


async def list_resources(kinds: List[ResourceKind]) -> List[RoutingResource]:
    """Lists every routing resource of the tracked kinds."""
    resources = []
    for kind in kinds:
        async for obj in kr8s.asyncio.get(kind.plural, namespace=kr8s.ALL):
            resources.append(RoutingResource.from_raw(kind, obj.raw))
    return resources


class StatusAddressApp:
    """Propagates the proxy Service address into routing resource status."""

    def __init__(self, settings: config.Settings):
        self.settings = settings
        self.resync_needed = asyncio.Event()
        self.register = AddressRegister()
        self.cache = StatusCache()
        self.watcher = ServiceAddressWatcher(
            settings.service_name, settings.service_namespace, self.register, self.resync_needed
        )
        self.synchronizer = StatusSynchronizer(
            self.register,
            self.cache,
            patch_status,
            ingress_class=settings.ingress_class,
            claim_default_class=settings.claim_default_class,
        )
        self.dispatcher = EventDispatcher(self.watcher, self.synchronizer)

    async def setup(self) -> None:
        """Loads the current address, then replays all existing resources."""
        await refresh_service(self.watcher)

        resources = await list_resources(self.settings.kinds)
        logger.info(f"Replaying {len(resources)} existing routing resources")
        await self.synchronizer.rebuild(resources)

    async def run(self) -> None:
        """Runs the watch loops and the re-sync worker."""
        await self.setup()

        tasks = [
            asyncio.create_task(service_watcher(self.dispatcher, self.settings.watch_retry)),
            asyncio.create_task(resync_worker(self.resync_needed, self.synchronizer, self.settings.debounce_delay)),
        ]
        for kind in self.settings.kinds:
            tasks.append(asyncio.create_task(resource_watcher(self.dispatcher, kind, self.settings.watch_retry)))

        await asyncio.gather(*tasks)


def cli(argv: Optional[List[str]] = None):
    """Main command-line entrypoint."""
    parser = argparse.ArgumentParser(description="Publish the proxy Service address on routing resources")
    parser.add_argument("--config", type=Path, help="Path to a YAML configuration file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        config.lbstatus_logger.setLevel(logging.DEBUG)
    settings = config.load_config(args.config) if args.config else config.Settings.from_env()

    app = StatusAddressApp(settings)
    try:
        asyncio.run(app.run())
    except (KeyboardInterrupt, SystemExit) as e:
        if isinstance(e, SystemExit) and e.code == 0:
            logger.info("Exiting normally.")
        elif isinstance(e, SystemExit):
            logger.error(f"Exiting due to fatal error (code {e.code}).")
        else:
            logger.info("Exiting.")


if __name__ == "__main__":
    cli()
