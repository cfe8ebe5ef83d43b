"""Connector abstraction and adapters."""

from .base import (
    AlreadyExistsError,
    CanonicalRecord,
    ConnectorRecord,
    ConnectorSpace,
    ConnectorSpaceError,
    JoinRule,
)

__all__ = [
    'AlreadyExistsError',
    'CanonicalRecord',
    'ConnectorRecord',
    'ConnectorSpace',
    'ConnectorSpaceError',
    'JoinRule',
]
