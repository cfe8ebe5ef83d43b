"""Attribute converters. Importing this package registers the built-in kinds."""

from .base import (
    AttributeConverter,
    ConversionError,
    Direction,
    converter_types,
    create_converter,
    register_converter,
)
from .replace import ReplaceConverter

__all__ = [
    'AttributeConverter',
    'ConversionError',
    'Direction',
    'ReplaceConverter',
    'converter_types',
    'create_converter',
    'register_converter',
]
