import logging
import threading

from .models import EMPTY_ADDRESS, Address, format_address

logger = logging.getLogger(__name__)


class AddressRegister:
    """Holds the current externally visible address of the proxy Service."""

    _address: Address

    def __init__(self, address: Address = EMPTY_ADDRESS):
        self._lock = threading.Lock()
        self._address = tuple(address)

    def get(self) -> Address:
        with self._lock:
            return self._address

    def set(self, address: Address) -> bool:
        """
        Overwrites the stored address.

        Args:
            address: The new address.

        Returns:
            True if the stored value changed.
        """
        address = tuple(address)
        with self._lock:
            changed = address != self._address
            self._address = address
        if changed:
            logger.info(f"Address changed to '{format_address(address)}'")
        return changed
