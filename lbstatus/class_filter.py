# Claimed by an unconfigured controller when claim_default is enabled.
DEFAULT_INGRESS_CLASS = "contour"


def matches(resource_class: str, controller_class: str, claim_default: bool = False) -> bool:
    """
    Decides whether a routing resource belongs to this controller.

    Args:
        resource_class: The resource's class, empty if unset.
        controller_class: The class this controller is configured with.
        claim_default: Let an unconfigured controller also claim resources
            carrying the default class name.

    Returns:
        True if the controller owns the resource.
    """
    if resource_class == controller_class:
        return True
    return claim_default and not controller_class and resource_class == DEFAULT_INGRESS_CLASS
