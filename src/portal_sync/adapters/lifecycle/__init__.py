"""App lifecycle adapters."""

from portal_sync.adapters.lifecycle.app_lifecycle_emitter import AppLifecycleEmitter

__all__ = ["AppLifecycleEmitter"]
