"""Deletion policy for canonical records."""

import logging

from metaverse_sync.config import SolutionConfiguration
from metaverse_sync.connectors.base import JoinRule

logger = logging.getLogger(__name__)


def should_delete(connector_record, config: SolutionConfiguration) -> bool:
    """
    Decide whether a canonical record goes away with a disconnected record.

    Only the projecting (authoritative) connector removes the canonical
    record; records that merely joined an existing canonical record do not.

    Args:
        connector_record: The disappearing ConnectorRecord
        config: Solution configuration

    Returns:
        True if the canonical record should be deleted
    """
    delete = connector_record.join_rule == JoinRule.PROJECTION

    connector = config.connector_by_id(connector_record.connector_id)
    connector_name = connector.name if connector else connector_record.connector_id
    logger.info(f"Object '{connector_record.dn}' from {connector_name} "
                f"({connector_record.join_rule.value}) will be deleted: {delete}")
    return delete
