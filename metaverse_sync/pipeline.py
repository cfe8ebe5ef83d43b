"""
Attribute flow pipeline.

Runs every converter registered for a direction, in configuration order,
against one canonical record / connector record pair.
"""

import logging
from typing import List

from metaverse_sync.config import ConnectorDescriptor, SolutionConfiguration
from metaverse_sync.converters import AttributeConverter, ConversionError, Direction

logger = logging.getLogger(__name__)


def apply_converter(converter: AttributeConverter, canonical, connector_record,
                    connector: ConnectorDescriptor) -> None:
    """
    Apply a single converter.

    Raises:
        ConversionError: If the converter cannot produce its value
    """
    converter.convert(canonical, connector_record, connector)


class AttributeFlowPipeline:
    """Ordered set of attribute converters for both flow directions."""

    def __init__(self, config: SolutionConfiguration):
        self.config = config

    def converters(self, direction: Direction) -> List[AttributeConverter]:
        return self.config.converters(direction)

    def apply(self, direction: Direction, canonical, connector_record,
              connector: ConnectorDescriptor) -> int:
        """
        Run all converters of one direction.

        A failing converter aborts the pass; converters after it do not run.

        Args:
            direction: Direction.IMPORT or Direction.EXPORT
            canonical: CanonicalRecord
            connector_record: ConnectorRecord
            connector: Connector being synchronized (source on import,
                target on export)

        Returns:
            Number of converters applied

        Raises:
            ConversionError: From the first failing converter
        """
        converters = self.converters(direction)
        logger.debug(f"Running {len(converters)} {direction.value} converters for {connector.name}")

        for converter in converters:
            try:
                apply_converter(converter, canonical, connector_record, connector)
            except ConversionError as e:
                logger.error(f"{direction.value.capitalize()} attribute flow for "
                             f"{connector.name} aborted at '{converter.attribute}': {e}")
                raise

        return len(converters)
