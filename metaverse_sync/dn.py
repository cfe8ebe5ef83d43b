"""
Distinguished name re-rooting between connector domains.

Source DNs are relative to their own domain root. Provisioning moves the path
under the destination domain's root while keeping the OU structure beneath it.
"""

import logging
from typing import Iterable, Optional

from metaverse_sync.config import ConnectorDescriptor

logger = logging.getLogger(__name__)

# Trailing token meaning "insert the destination root here"
ROOT_PLACEHOLDER = '%ROOT%'


def find_root(dn: str, connectors: Iterable[ConnectorDescriptor]) -> Optional[ConnectorDescriptor]:
    """
    Find the connector whose root is a case-insensitive suffix of a DN.

    When several roots match (nested domains such as DC=eu,DC=corp,DC=com and
    DC=corp,DC=com) the longest root wins; equal lengths keep declaration order.

    Returns:
        The matching connector, or None
    """
    match = None
    for connector in connectors:
        if connector.is_root_of(dn) and (match is None or len(connector.root) > len(match.root)):
            match = connector
    return match


def resolve_target_dn(source_dn: str, target: ConnectorDescriptor,
                      connectors: Iterable[ConnectorDescriptor]) -> str:
    """
    Re-root a DN under the target connector's root.

    Args:
        source_dn: Canonical DN, ending in a known root or in %ROOT%
        target: Connector the DN is resolved for
        connectors: All configured connectors

    Returns:
        The re-rooted DN, or source_dn unchanged when no known root is found
    """
    if source_dn.upper().endswith(ROOT_PLACEHOLDER):
        resolved = source_dn[:-len(ROOT_PLACEHOLDER)] + target.root
        logger.debug(f"Resolved placeholder DN '{source_dn}' to '{resolved}' for {target.name}")
        return resolved

    source = find_root(source_dn, connectors)
    if source is None:
        logger.debug(f"No known root in '{source_dn}', using it unchanged for {target.name}")
        return source_dn

    resolved = source_dn[:len(source_dn) - len(source.root)] + target.root
    logger.debug(f"Resolved DN '{source_dn}' from {source.name} to '{resolved}' for {target.name}")
    return resolved
