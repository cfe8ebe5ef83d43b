"""
Metaverse Sync - Reconcile identity records across directory domains.

This package provides the reconciliation and provisioning engine a
synchronization host calls into: attribute conversion between connector and
canonical form, DN re-rooting between domains, provisioning into target
connectors and the canonical record deletion policy.
"""

__version__ = "1.0.0"
__author__ = "Metaverse Sync Team"
