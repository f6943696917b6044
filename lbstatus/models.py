from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Tuple

# Checked in order, the first non-empty value wins.
CLASS_ANNOTATIONS = (
    "projectcontour.io/ingress.class",
    "contour.heptio.com/ingress.class",
    "kubernetes.io/ingress.class",
)


class ResourceKind(Enum):
    """Routing resource kinds whose status carries the proxy address."""

    INGRESS = "Ingress"
    HTTPPROXY = "HTTPProxy"

    @property
    def plural(self) -> str:
        return {ResourceKind.INGRESS: "ingresses", ResourceKind.HTTPPROXY: "httpproxies"}[self]

    @classmethod
    def from_plural(cls, plural: str) -> "ResourceKind":
        for kind in cls:
            if kind.plural == plural.lower():
                return kind
        raise ValueError(f"Unsupported routing resource kind '{plural}'")


@dataclass(frozen=True)
class LoadBalancerIngress:
    """A single address entry: an IP literal and/or a hostname."""

    ip: str = ""
    hostname: str = ""

    @classmethod
    def from_dict(cls, entry: Dict[str, Any]) -> "LoadBalancerIngress":
        return cls(ip=entry.get("ip") or "", hostname=entry.get("hostname") or "")

    def to_dict(self) -> Dict[str, str]:
        out = {}
        if self.ip:
            out["ip"] = self.ip
        if self.hostname:
            out["hostname"] = self.hostname
        return out

    def __str__(self) -> str:
        return self.ip or self.hostname


# Order matters, consumers compare the list structurally.
Address = Tuple[LoadBalancerIngress, ...]

EMPTY_ADDRESS: Address = ()


def address_from_status(body: Dict[str, Any]) -> Address:
    """Reads ``status.loadBalancer.ingress`` from an object body."""
    status = body.get("status") or {}
    entries = (status.get("loadBalancer") or {}).get("ingress") or []
    return tuple(LoadBalancerIngress.from_dict(entry) for entry in entries)


def address_to_list(address: Address) -> List[Dict[str, str]]:
    return [entry.to_dict() for entry in address]


def format_address(address: Address) -> str:
    return ",".join(str(entry) for entry in address) or "<none>"


class RoutingResourceKey(NamedTuple):
    namespace: str
    name: str
    kind: ResourceKind

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


def resource_class(kind: ResourceKind, body: Dict[str, Any]) -> str:
    """
    Resolves the ingress class of a routing resource.

    Annotations take precedence over ``spec.ingressClassName``, which only
    Ingress objects carry.

    Args:
        kind: The kind of the resource.
        body: The full object body.

    Returns:
        The class name, or an empty string if none is set.
    """
    annotations = (body.get("metadata") or {}).get("annotations") or {}
    for annotation in CLASS_ANNOTATIONS:
        if value := annotations.get(annotation):
            return value
    if kind is ResourceKind.INGRESS:
        return (body.get("spec") or {}).get("ingressClassName") or ""
    return ""


@dataclass(frozen=True)
class RoutingResource:
    """Typed snapshot of an Ingress or HTTPProxy."""

    kind: ResourceKind
    namespace: str
    name: str
    ingress_class: str = ""
    status: Address = EMPTY_ADDRESS
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def key(self) -> RoutingResourceKey:
        return RoutingResourceKey(self.namespace, self.name, self.kind)

    @classmethod
    def from_raw(cls, kind: ResourceKind, body: Dict[str, Any]) -> "RoutingResource":
        metadata = body.get("metadata") or {}
        return cls(
            kind=kind,
            namespace=metadata.get("namespace") or "",
            name=metadata.get("name") or "",
            ingress_class=resource_class(kind, body),
            status=address_from_status(body),
            raw=body,
        )


@dataclass(frozen=True)
class LoadBalancerService:
    """Typed snapshot of the proxy's front-end Service."""

    namespace: str
    name: str
    address: Address = EMPTY_ADDRESS

    @classmethod
    def from_raw(cls, body: Dict[str, Any]) -> "LoadBalancerService":
        metadata = body.get("metadata") or {}
        return cls(
            namespace=metadata.get("namespace") or "",
            name=metadata.get("name") or "",
            address=address_from_status(body),
        )
