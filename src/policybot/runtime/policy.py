"""Two-state policy toggle."""

from ..keenetic.models import DEFAULT_POLICY, RESTRICTED_POLICY


def toggle_policy(current: str, restricted_policy: str = RESTRICTED_POLICY) -> str:
    """Restricted becomes default; anything else becomes restricted."""
    return DEFAULT_POLICY if current == restricted_policy else restricted_policy
