"""Auth adapters."""

from portal_sync.adapters.auth.local_auth_state import LocalAuthState

__all__ = ["LocalAuthState"]
