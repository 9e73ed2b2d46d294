"""gwsync — reconcile declared gateway policy rules against an NSX-T policy store."""

__version__ = "0.1.0"
