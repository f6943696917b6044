import asyncio

from lbstatus.models import LoadBalancerIngress, ResourceKind, RoutingResource

IP_ADDRESS = (LoadBalancerIngress(ip="127.0.0.1"),)
HOSTNAME_ADDRESS = (LoadBalancerIngress(hostname="projectcontour.io"),)


class RecordingPatcher:
    """Stands in for the API server, recording every status write."""

    def __init__(self):
        self.calls = []
        self.failing = set()

    async def __call__(self, resource, address):
        await asyncio.sleep(0)
        self.calls.append((resource.key, address))
        if resource.name in self.failing:
            raise RuntimeError("connection refused")


def ingress_body(name, ingress_class="", address=(), kind="Ingress"):
    return {
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": name,
            "annotations": {"kubernetes.io/ingress.class": ingress_class},
        },
        "status": {"loadBalancer": {"ingress": [entry.to_dict() for entry in address]}},
    }


def ingress(name, ingress_class="", address=()):
    return RoutingResource.from_raw(ResourceKind.INGRESS, ingress_body(name, ingress_class, address))


def service_body(name="envoy", namespace="projectcontour", address=()):
    return {
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "status": {"loadBalancer": {"ingress": [entry.to_dict() for entry in address]}},
    }
