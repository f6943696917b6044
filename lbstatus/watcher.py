import asyncio
import logging
from typing import Optional

from .models import EMPTY_ADDRESS, Address, LoadBalancerService, format_address
from .register import AddressRegister

logger = logging.getLogger(__name__)


class ServiceAddressWatcher:
    """
    Publishes the address of one named Service into an AddressRegister.

    Every publish overwrites the register and sets ``resync_needed``. A
    consumer that falls behind only sees the latest address, and repeated
    publishes collapse into a single pending re-sync.
    """

    service_name: str
    service_namespace: str

    def __init__(
        self,
        service_name: str,
        service_namespace: str,
        register: AddressRegister,
        resync_needed: asyncio.Event,
    ):
        self.service_name = service_name
        self.service_namespace = service_namespace
        self.register = register
        self.resync_needed = resync_needed

    def is_watched(self, service: Optional[LoadBalancerService]) -> bool:
        return (
            service is not None
            and service.name == self.service_name
            and service.namespace == self.service_namespace
        )

    def on_add(self, service: LoadBalancerService) -> None:
        if self.is_watched(service):
            self._publish(service.address)

    def on_update(self, old: Optional[LoadBalancerService], new: LoadBalancerService) -> None:
        # Only the new object matters.
        if self.is_watched(new):
            self._publish(new.address)

    def on_delete(self, service: LoadBalancerService) -> None:
        if self.is_watched(service):
            logger.info(f"Service '{self.service_namespace}/{self.service_name}' deleted, withdrawing address")
            self._publish(EMPTY_ADDRESS)

    def _publish(self, address: Address) -> None:
        if not self.register.set(address):
            logger.debug(f"Address of '{self.service_name}' unchanged: '{format_address(address)}'")
        self.resync_needed.set()
