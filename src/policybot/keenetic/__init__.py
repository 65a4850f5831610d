"""
Keenetic router module.

RCI API client used to list hosts and switch their traffic policy.
"""

from .client import KeeneticClient, RouterAuthError, RouterError
from .models import DEFAULT_POLICY, RESTRICTED_POLICY, Device

__all__ = [
    "KeeneticClient",
    "RouterAuthError",
    "RouterError",
    "DEFAULT_POLICY",
    "RESTRICTED_POLICY",
    "Device",
]
