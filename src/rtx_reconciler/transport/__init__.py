"""Remote shell transports."""
from .base import (
    BufferedTransport,
    DeviceIdentity,
    Privilege,
    Session,
    Transport,
)
from .ssh import SSHTransport

__all__ = [
    "BufferedTransport",
    "DeviceIdentity",
    "Privilege",
    "Session",
    "Transport",
    "SSHTransport",
    "create_transport",
]

# Transport type registry
TRANSPORT_TYPES = {
    "ssh": SSHTransport,
}


def create_transport(identity: DeviceIdentity) -> Transport:
    """Factory function to create a transport for a device identity."""
    transport_type = identity.type.lower()
    if transport_type not in TRANSPORT_TYPES:
        raise ValueError(f"Unknown transport type: {transport_type}")

    return TRANSPORT_TYPES[transport_type](identity)
