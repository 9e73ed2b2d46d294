"""Remote policy store client for NSX-T.

Provides the HTTP implementation of the policy store used by the
reconciler.
"""

from gwsync.client.nsx import PolicyClient

__all__ = ["PolicyClient"]
