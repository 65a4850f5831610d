"""
Runtime module.

The update dispatcher and the policy toggle it applies.
"""

from .dispatcher import UpdateDispatcher
from .policy import toggle_policy

__all__ = ["UpdateDispatcher", "toggle_policy"]
