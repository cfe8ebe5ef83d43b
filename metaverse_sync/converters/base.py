"""
Attribute converter interface and converter type registry.

Every converter kind subclasses AttributeConverter and registers itself under
the 'type' tag used in configuration files. Configuration loading goes through
create_converter(), so an unknown tag is a configuration error raised at load
time rather than a dispatch failure during synchronization.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from ..config import ConfigurationError

logger = logging.getLogger(__name__)

# Pseudo-attribute name that reads a connector record's distinguished name
DN_PSEUDO_ATTRIBUTE = 'DN'


class Direction(Enum):
    """Attribute flow direction."""

    IMPORT = 'import'
    EXPORT = 'export'


class ConversionError(Exception):
    """Raised when a converter cannot produce its output value."""
    pass


class AttributeConverter(ABC):
    """
    Abstract base class for attribute converters.

    A converter reads one attribute and writes one attribute. On import it
    reads from the connector record and writes the canonical record; on
    export it reads the canonical record and writes the connector record.

    Attributes:
        attribute: Name of the attribute written
        source_attribute: Name of the attribute read (defaults to attribute)
        direction: Direction the converter runs in
    """

    type_name: Optional[str] = None

    def __init__(self, attribute: str, direction: Direction,
                 source_attribute: Optional[str] = None):
        self.attribute = attribute
        self.direction = direction
        self.source_attribute = source_attribute or attribute

    @classmethod
    @abstractmethod
    def from_config(cls, entry: Dict[str, Any], direction: Direction) -> 'AttributeConverter':
        """
        Build a converter from one configuration declaration.

        Raises:
            ConfigurationError: If required settings are missing or invalid
        """
        pass

    @abstractmethod
    def convert(self, canonical, connector_record, connector) -> None:
        """
        Run the conversion for one record pair.

        Args:
            canonical: CanonicalRecord
            connector_record: ConnectorRecord
            connector: ConnectorDescriptor of the connector being synchronized

        Raises:
            ConversionError: If the input cannot be read or converted
        """
        pass

    def read_input(self, canonical, connector_record) -> str:
        """Read the input value for this converter's direction."""
        if self.direction == Direction.EXPORT:
            value = canonical.get(self.source_attribute)
        elif self.source_attribute.upper() == DN_PSEUDO_ATTRIBUTE:
            value = connector_record.dn
        else:
            value = connector_record.get(self.source_attribute)

        if value is None:
            side = 'canonical record' if self.direction == Direction.EXPORT else 'connector record'
            raise ConversionError(
                f"Converter '{self.attribute}': source attribute "
                f"'{self.source_attribute}' not present on {side}"
            )
        return str(value)

    def write_output(self, canonical, connector_record, value: str) -> None:
        """Write the output value for this converter's direction."""
        if self.direction == Direction.EXPORT:
            connector_record.set(self.attribute, value)
        else:
            canonical.set(self.attribute, value)

    def __repr__(self):
        return (f"{type(self).__name__}(attribute={self.attribute!r}, "
                f"source_attribute={self.source_attribute!r}, "
                f"direction={self.direction.value!r})")


_CONVERTER_TYPES: Dict[str, Type[AttributeConverter]] = {}


def register_converter(type_name: str) -> Callable[[Type[AttributeConverter]], Type[AttributeConverter]]:
    """
    Class decorator registering a converter kind under a configuration tag.

    Example:
        @register_converter('replace')
        class ReplaceConverter(AttributeConverter):
            ...
    """
    def decorator(cls):
        key = type_name.lower()
        if key in _CONVERTER_TYPES and _CONVERTER_TYPES[key] is not cls:
            raise ValueError(f"Converter type '{type_name}' is already registered")
        cls.type_name = key
        _CONVERTER_TYPES[key] = cls
        return cls
    return decorator


def converter_types() -> List[str]:
    """Return the registered converter type tags."""
    return sorted(_CONVERTER_TYPES)


def create_converter(entry: Dict[str, Any], direction: Direction) -> AttributeConverter:
    """
    Create a converter from a configuration declaration.

    Raises:
        ConfigurationError: If the type tag is missing or unknown, or the
            declaration is invalid for its kind
    """
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Converter declaration must be a mapping, got {type(entry).__name__}")

    type_name = entry.get('type')
    if not type_name:
        raise ConfigurationError(f"{direction.value} attribute conversion without a 'type' identifier")

    converter_class = _CONVERTER_TYPES.get(str(type_name).lower())
    if converter_class is None:
        raise ConfigurationError(
            f"Unknown converter type '{type_name}' "
            f"(known types: {', '.join(converter_types())})"
        )

    return converter_class.from_config(entry, direction)
