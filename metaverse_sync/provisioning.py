"""
Provisioning reconciler.

For one canonical record, decides per target connector whether a linked
connector-space record exists, must be created, or is ambiguous. Expected
outcomes of a multi-domain system (missing identity, ambiguous links, create
races) are reported in the returned ProvisioningResult rather than raised.
"""

import logging
from enum import Enum
from typing import List, Optional

from metaverse_sync.config import ConnectorDescriptor, SolutionConfiguration
from metaverse_sync.connectors.base import AlreadyExistsError
from metaverse_sync.dn import resolve_target_dn
from metaverse_sync.logging_setup import ProvisioningAuditLogger, audit_logger

logger = logging.getLogger(__name__)


class ProvisioningStatus(Enum):
    """Outcome of provisioning one canonical record into one target."""

    CREATED = 'created'
    ALREADY_PRESENT = 'already_present'
    LINKED = 'linked'
    AMBIGUOUS_LINK = 'ambiguous_link'
    MISSING_IDENTITY = 'missing_identity'
    UNSUPPORTED_OBJECT_TYPE = 'unsupported_object_type'


FAILURE_STATUSES = frozenset([ProvisioningStatus.AMBIGUOUS_LINK])


class TargetOutcome:
    """Result of reconciling one target connector."""

    def __init__(self, target: str, status: ProvisioningStatus,
                 dn: Optional[str] = None, message: Optional[str] = None):
        self.target = target
        self.status = status
        self.dn = dn
        self.message = message

    @property
    def failed(self) -> bool:
        return self.status in FAILURE_STATUSES

    def __repr__(self):
        return f"TargetOutcome({self.target!r}, {self.status.value}, dn={self.dn!r})"


class ProvisioningResult:
    """
    Aggregated result of one reconcile() call.

    Attributes:
        skipped_reason: MISSING_IDENTITY or UNSUPPORTED_OBJECT_TYPE when no
            target was processed, else None
        outcomes: One TargetOutcome per processed target, in configuration order
        not_attempted: Names of targets left out after a fail-fast abort
    """

    def __init__(self, skipped_reason: Optional[ProvisioningStatus] = None,
                 message: Optional[str] = None):
        self.skipped_reason = skipped_reason
        self.message = message
        self.outcomes: List[TargetOutcome] = []
        self.not_attempted: List[str] = []

    @property
    def status(self) -> Optional[ProvisioningStatus]:
        """
        Overall status of the call.

        The skip reason when no target was processed, else the first failing
        target's status, else CREATED when any target was created, else the
        first target's status. None when there are no targets.
        """
        if self.skipped_reason:
            return self.skipped_reason
        if self.failures:
            return self.failures[0].status
        if self.created:
            return ProvisioningStatus.CREATED
        if self.outcomes:
            return self.outcomes[0].status
        return None

    @property
    def missing_identity(self) -> bool:
        return self.skipped_reason == ProvisioningStatus.MISSING_IDENTITY

    @property
    def failures(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def partially_failed(self) -> bool:
        return bool(self.failures)

    @property
    def created(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if o.status == ProvisioningStatus.CREATED]

    def outcome(self, target: str) -> Optional[TargetOutcome]:
        """Return the outcome for a target name (case-insensitive)."""
        for o in self.outcomes:
            if o.target.lower() == target.lower():
                return o
        return None

    def summary(self) -> str:
        if self.skipped_reason:
            return f"skipped ({self.skipped_reason.value})"
        parts = [f"{o.target}={o.status.value}" for o in self.outcomes]
        parts.extend(f"{name}=not_attempted" for name in self.not_attempted)
        return ', '.join(parts) or 'no targets'


class ProvisioningReconciler:
    """
    Creates or links connector-space records for every target connector.

    Targets are processed sequentially in configuration order. A target with
    more than one linked record is reported as AMBIGUOUS_LINK and the
    remaining targets are still processed unless fail-fast is requested.
    """

    def __init__(self, config: SolutionConfiguration,
                 audit: Optional[ProvisioningAuditLogger] = None):
        self.config = config
        self.settings = config.provisioning
        self.audit = audit or audit_logger

    def reconcile(self, canonical, fail_fast: Optional[bool] = None) -> ProvisioningResult:
        """
        Reconcile one canonical record against all target connectors.

        Args:
            canonical: CanonicalRecord to provision
            fail_fast: Stop at the first failing target (defaults to the
                provisioning.fail_fast setting)

        Returns:
            ProvisioningResult describing each target's outcome

        Raises:
            Exception: Connector errors other than AlreadyExistsError propagate
        """
        if fail_fast is None:
            fail_fast = self.settings['fail_fast']

        # Records without attributes come through on deletion passes
        if not canonical.attribute_names():
            logger.debug("Skipping canonical record without attributes")
            return ProvisioningResult(ProvisioningStatus.MISSING_IDENTITY,
                                      "record has no attributes")

        if canonical.object_type.lower() not in self.settings['object_types']:
            logger.debug(f"Object type '{canonical.object_type}' is not provisioned")
            return ProvisioningResult(ProvisioningStatus.UNSUPPORTED_OBJECT_TYPE,
                                      f"object type '{canonical.object_type}' is not provisioned")

        dn_attribute = self.settings['dn_attribute']
        account_attribute = self.settings['account_name_attribute']
        if not (canonical.is_present(dn_attribute) and canonical.is_present(account_attribute)):
            message = (f"missing critical information: {dn_attribute}={canonical.get(dn_attribute)!r} "
                       f"{account_attribute}={canonical.get(account_attribute)!r}")
            logger.warning(f"Error provisioning {canonical.object_type}, {message}")
            return ProvisioningResult(ProvisioningStatus.MISSING_IDENTITY, message)

        source_dn = canonical.get(dn_attribute)
        result = ProvisioningResult()
        targets = list(self.config.targets)

        for index, target in enumerate(targets):
            outcome = self._reconcile_target(canonical, target, source_dn)
            result.outcomes.append(outcome)

            if outcome.failed and fail_fast:
                result.not_attempted = [t.name for t in targets[index + 1:]]
                logger.error(f"[{target.name}][{source_dn}] Fail-fast: skipping remaining targets "
                             f"{result.not_attempted}")
                break

        logger.debug(f"[{source_dn}] Provisioning finished: {result.summary()}")
        return result

    def _reconcile_target(self, canonical, target: ConnectorDescriptor,
                          source_dn: str) -> TargetOutcome:
        space = canonical.connector_space(target.connector_id)
        linked = space.linked_records()

        if len(linked) == 0:
            logger.info(f"[{target.name}][{source_dn}] Target not yet found in connector space. Creating ...")
            return self._create(canonical, space, target, source_dn)

        if len(linked) == 1:
            logger.info(f"[{target.name}][{source_dn}] Target already found in connector space. Updating ...")
            return TargetOutcome(target.name, ProvisioningStatus.LINKED, dn=linked[0].dn)

        message = f"more than one matching entry found in the connector space ({len(linked)})"
        logger.error(f"[{target.name}][{source_dn}] Error processing {canonical.object_type} - {message}")
        self.audit.log_ambiguous(target.name, source_dn, len(linked))
        return TargetOutcome(target.name, ProvisioningStatus.AMBIGUOUS_LINK, message=message)

    def _create(self, canonical, space, target: ConnectorDescriptor, source_dn: str) -> TargetOutcome:
        target_dn = resolve_target_dn(source_dn, target, self.config.connectors)
        account_name = canonical.get(self.settings['account_name_attribute'])

        record = space.start_new_record(self.settings['target_object_type'])
        record.dn = target_dn
        record.set(self.settings['target_account_name_attribute'], account_name)
        display_name = canonical.get(self.settings['display_name_attribute'])
        if display_name:
            record.set(self.settings['target_display_name_attribute'], display_name)

        try:
            space.commit(record)
        except AlreadyExistsError as e:
            logger.info(f"[{target.name}][{source_dn}] Target already found in connector space: {e}")
            self.audit.log_already_present(target.name, target_dn)
            return TargetOutcome(target.name, ProvisioningStatus.ALREADY_PRESENT, dn=target_dn,
                                 message=str(e))

        self.audit.log_created(target.name, target_dn, account_name)
        return TargetOutcome(target.name, ProvisioningStatus.CREATED, dn=target_dn)
