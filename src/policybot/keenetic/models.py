"""Router device model and policy identifiers."""

from dataclasses import dataclass

DEFAULT_POLICY = "default"
RESTRICTED_POLICY = "Policy0"


@dataclass(frozen=True)
class Device:
    """A host known to the router.

    Attributes:
        mac: Lower-case MAC address, unique per device
        name: Display name
        policy: Router policy id, DEFAULT_POLICY when none is assigned
    """
    mac: str
    name: str
    policy: str = DEFAULT_POLICY
