"""
Connector abstraction consumed by the synchronization engine.

The host synchronization runtime owns canonical (metaverse) records and the
per-connector staged records. This module defines the abstract interfaces the
engine talks to; adapters for a concrete runtime must inherit from these
classes and implement the required methods.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional


class ConnectorSpaceError(Exception):
    """Base exception for connector space errors."""
    pass


class AlreadyExistsError(ConnectorSpaceError):
    """Raised on commit when a record with the same identity already exists."""
    pass


class JoinRule(Enum):
    """How a connector-space record became linked to its canonical record."""

    PROJECTION = 'projection'
    JOIN = 'join'
    PROVISIONING = 'provisioning'


class ConnectorRecord(ABC):
    """
    Staged, per-connector representation of an identity.

    Attributes:
        connector_id: Identifier of the connector the record lives in
        object_type: Connector-side object class (e.g. 'user')
        join_rule: How the record was linked to its canonical record
    """

    def __init__(self, connector_id: str, object_type: str,
                 join_rule: JoinRule = JoinRule.JOIN):
        self.connector_id = connector_id
        self.object_type = object_type
        self.join_rule = join_rule

    @property
    @abstractmethod
    def dn(self) -> Optional[str]:
        """Distinguished name of the record."""
        pass

    @dn.setter
    @abstractmethod
    def dn(self, value: str):
        pass

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """
        Read a named attribute value.

        Returns:
            The value, or None if the attribute is not present
        """
        pass

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Write a named attribute value."""
        pass


class ConnectorSpace(ABC):
    """
    View of one connector's space as seen from a single canonical record.

    Lists the records linked to that canonical record and creates new linked
    records.
    """

    def __init__(self, connector_id: str):
        self.connector_id = connector_id

    @abstractmethod
    def linked_records(self) -> List[ConnectorRecord]:
        """Return the connector-space records linked to the canonical record."""
        pass

    @abstractmethod
    def start_new_record(self, object_type: str) -> ConnectorRecord:
        """
        Create an uncommitted record of the given object type.

        The record is not visible in the space until commit() succeeds.
        """
        pass

    @abstractmethod
    def commit(self, record: ConnectorRecord) -> None:
        """
        Commit a new record and link it to the canonical record.

        Raises:
            AlreadyExistsError: If a record with the same DN already exists
        """
        pass


class CanonicalRecord(ABC):
    """Single unified (metaverse) representation of one identity."""

    def __init__(self, object_type: str):
        self.object_type = object_type

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Read a named attribute value, None if not present."""
        pass

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Write a named attribute value."""
        pass

    @abstractmethod
    def attribute_names(self) -> List[str]:
        """Names of the attributes currently present on the record."""
        pass

    @abstractmethod
    def connector_space(self, connector_id: str) -> ConnectorSpace:
        """Return this record's view of the given connector's space."""
        pass

    def is_present(self, name: str) -> bool:
        """Check whether an attribute holds a non-empty value."""
        value = self.get(name)
        return value is not None and value != ''
