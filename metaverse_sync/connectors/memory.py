"""
In-memory connector adapter.

Implements the connector abstraction with plain dictionaries. Used to run the
engine without a host runtime, for dry runs and tests.
"""

import logging
import uuid
from typing import Dict, List, Optional

from .base import (
    AlreadyExistsError,
    CanonicalRecord,
    ConnectorRecord,
    ConnectorSpace,
    JoinRule,
)

logger = logging.getLogger(__name__)


class MemoryConnectorRecord(ConnectorRecord):
    """Connector record backed by a dictionary."""

    def __init__(self, connector_id: str, object_type: str, dn: Optional[str] = None,
                 attributes: Optional[Dict[str, str]] = None,
                 join_rule: JoinRule = JoinRule.JOIN):
        super().__init__(connector_id, object_type, join_rule)
        self._dn = dn
        self.attributes = dict(attributes or {})
        self.canonical_id = None

    @property
    def dn(self) -> Optional[str]:
        return self._dn

    @dn.setter
    def dn(self, value: str):
        self._dn = value

    def get(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def set(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def __repr__(self):
        return f"MemoryConnectorRecord({self.connector_id!r}, {self._dn!r})"


class MemoryConnectorStore:
    """All records of one connector, keyed by case-folded DN."""

    def __init__(self, connector_id: str):
        self.connector_id = connector_id
        self.records: Dict[str, MemoryConnectorRecord] = {}

    def add(self, record: MemoryConnectorRecord, canonical_id: Optional[str] = None):
        """Insert a record directly, bypassing commit (used to stage existing data)."""
        if record.dn is None:
            raise ValueError("Connector record must have a DN")
        key = record.dn.lower()
        if key in self.records:
            raise AlreadyExistsError(
                f"Object '{record.dn}' already exists in connector '{self.connector_id}'"
            )
        record.canonical_id = canonical_id
        self.records[key] = record
        return record

    def linked_to(self, canonical_id: str) -> List[MemoryConnectorRecord]:
        return [r for r in self.records.values() if r.canonical_id == canonical_id]


class MemoryConnectorSpace(ConnectorSpace):
    """A store seen through one canonical record."""

    def __init__(self, store: MemoryConnectorStore, canonical_id: str):
        super().__init__(store.connector_id)
        self.store = store
        self.canonical_id = canonical_id

    def linked_records(self) -> List[ConnectorRecord]:
        return self.store.linked_to(self.canonical_id)

    def start_new_record(self, object_type: str) -> ConnectorRecord:
        return MemoryConnectorRecord(self.connector_id, object_type,
                                     join_rule=JoinRule.PROVISIONING)

    def commit(self, record: ConnectorRecord) -> None:
        self.store.add(record, canonical_id=self.canonical_id)
        logger.debug(f"Committed {record.dn} to connector {self.connector_id}")


class MemoryCanonicalRecord(CanonicalRecord):
    """Canonical record backed by a dictionary and a MemoryDirectory."""

    def __init__(self, directory: 'MemoryDirectory', object_type: str,
                 attributes: Optional[Dict[str, str]] = None):
        super().__init__(object_type)
        self.directory = directory
        self.record_id = str(uuid.uuid4())
        self.attributes = dict(attributes or {})

    def get(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def set(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def attribute_names(self) -> List[str]:
        return list(self.attributes)

    def connector_space(self, connector_id: str) -> ConnectorSpace:
        return MemoryConnectorSpace(self.directory.store(connector_id), self.record_id)

    def link(self, record: MemoryConnectorRecord) -> MemoryConnectorRecord:
        """Stage an existing connector record as linked to this canonical record."""
        return self.directory.store(record.connector_id).add(record, canonical_id=self.record_id)

    def __repr__(self):
        return f"MemoryCanonicalRecord({self.object_type!r}, {self.attributes!r})"


class MemoryDirectory:
    """
    Container for canonical records and connector stores.

    Example:
        directory = MemoryDirectory()
        person = directory.new_record('person', distinguishedName='CN=Jane,DC=fabrikam,DC=org')
        person.connector_space('CONTOSO-AD').linked_records()
    """

    def __init__(self):
        self.stores: Dict[str, MemoryConnectorStore] = {}
        self.canonical_records: List[MemoryCanonicalRecord] = []

    def store(self, connector_id: str) -> MemoryConnectorStore:
        key = connector_id.lower()
        if key not in self.stores:
            self.stores[key] = MemoryConnectorStore(connector_id)
        return self.stores[key]

    def new_record(self, object_type: str, **attributes) -> MemoryCanonicalRecord:
        record = MemoryCanonicalRecord(self, object_type, attributes)
        self.canonical_records.append(record)
        return record
