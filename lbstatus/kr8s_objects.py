from typing import Dict, Type

from kr8s.asyncio.objects import APIObject, Ingress, new_class

from .models import Address, ResourceKind, RoutingResource, address_to_list

HTTPProxy = new_class(
    kind="HTTPProxy",
    version="projectcontour.io/v1",
    namespaced=True,
    plural="httpproxies",
)

RESOURCE_CLASSES: Dict[ResourceKind, Type[APIObject]] = {
    ResourceKind.INGRESS: Ingress,
    ResourceKind.HTTPPROXY: HTTPProxy,
}


def status_patch(address: Address) -> dict:
    """Builds the status subresource patch for an address, null clears it."""
    return {"status": {"loadBalancer": {"ingress": address_to_list(address) or None}}}


async def patch_status(resource: RoutingResource, address: Address) -> None:
    """
    Writes an address into the status subresource of a routing resource.

    Args:
        resource: The resource to patch.
        address: The address to publish.
    """
    cls = RESOURCE_CLASSES[resource.kind]
    obj = await cls({"metadata": {"name": resource.name, "namespace": resource.namespace}}, resource.namespace)
    await obj.patch(status_patch(address), subresource="status")
