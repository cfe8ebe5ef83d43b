"""
Host callback surface for Metaverse Sync.

The host synchronization runtime drives the engine through the lifecycle
callbacks defined by SynchronizationCore. MetaverseSync implements them on top
of the configuration model, the attribute flow pipeline, the provisioning
reconciler and the deletion policy. A thin adapter outside this package binds
it to the host's own extension mechanism.
"""

import sys
import logging
from abc import ABC, abstractmethod
from typing import Optional

from metaverse_sync import __version__
from metaverse_sync.config import ConfigurationError, SolutionConfiguration, load_config
from metaverse_sync.converters import Direction
from metaverse_sync.deletion import should_delete
from metaverse_sync.dn import resolve_target_dn
from metaverse_sync.logging_setup import (
    ProvisioningAuditLogger,
    audit_logger,
    reset_logging,
    setup_logging,
)
from metaverse_sync.pipeline import AttributeFlowPipeline
from metaverse_sync.provisioning import ProvisioningReconciler, ProvisioningResult

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Raised when a callback cannot be served (not initialized, unknown connector)."""
    pass


class SynchronizationCore(ABC):
    """Callbacks the host synchronization runtime invokes."""

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def terminate(self) -> None:
        pass

    @abstractmethod
    def provision(self, canonical) -> ProvisioningResult:
        pass

    @abstractmethod
    def should_delete(self, connector_record, canonical) -> bool:
        pass

    @abstractmethod
    def map_attributes_on_import(self, flow_rule_name: str, connector_record, canonical) -> None:
        pass

    @abstractmethod
    def map_attributes_on_export(self, flow_rule_name: str, canonical, connector_record) -> None:
        pass


class MetaverseSync(SynchronizationCore):
    """
    Reconciliation and provisioning engine.

    Example:
        engine = MetaverseSync(config_path='ConfigFiles/sync_config.yaml')
        engine.initialize()
        result = engine.provision(canonical_record)
        engine.terminate()
    """

    def __init__(self, config: Optional[SolutionConfiguration] = None,
                 config_path: Optional[str] = None,
                 base_dir: Optional[str] = None,
                 configure_logging: bool = False,
                 audit: Optional[ProvisioningAuditLogger] = None):
        """
        Initialize the engine (nothing is loaded until initialize()).

        Args:
            config: Ready configuration; skips loading from file
            config_path: Path to configuration file
            base_dir: Directory holding the default ConfigFiles location
            configure_logging: Install file/console handlers from the
                configuration's logging section
            audit: Audit logger for provisioning decisions
        """
        self._given_config = config
        self.config_path = config_path
        self.base_dir = base_dir
        self.configure_logging = configure_logging
        self.audit = audit or audit_logger

        self.config = None
        self.pipeline = None
        self.reconciler = None

    @property
    def initialized(self) -> bool:
        return self.config is not None

    def initialize(self) -> None:
        """
        Load configuration and build the engine components.

        Raises:
            ConfigurationError: If the configuration cannot be loaded; the
                engine stays uninitialized
        """
        logger.info('=' * 60)
        logger.info("Metaverse sync [initialize] started")
        logger.info(f"metaverse_sync version: {__version__}")

        try:
            config = self._given_config or load_config(self.config_path, self.base_dir)
        except ConfigurationError as e:
            logger.error(f"Metaverse sync [initialize] configuration file error: {e}")
            raise

        if self.configure_logging:
            setup_logging(dict(config.logging))

        self.config = config
        self.pipeline = AttributeFlowPipeline(config)
        self.reconciler = ProvisioningReconciler(config, audit=self.audit)
        logger.info("Metaverse sync [initialize] finished")

    def terminate(self) -> None:
        logger.info("Metaverse sync [terminate] started")
        self.config = None
        self.pipeline = None
        self.reconciler = None
        logger.info("Metaverse sync [terminate] finished")
        logger.info('=' * 60)
        if self.configure_logging:
            reset_logging()

    def provision(self, canonical) -> ProvisioningResult:
        """
        Create or link the canonical record in every target connector.

        Returns:
            ProvisioningResult; ambiguous links are reported in it, not raised
        """
        self._require_initialized('provision')
        logger.debug("Provision start")

        try:
            result = self.reconciler.reconcile(canonical)
        except Exception:
            dn = canonical.get(self.config.provisioning['dn_attribute']) or f"<unknown: {canonical!r}>"
            logger.error(f"Provisioning error for {canonical.object_type} {dn}", exc_info=True)
            raise

        if result.partially_failed:
            logger.error(f"Provisioning partially failed: {result.summary()}")
        return result

    def should_delete(self, connector_record, canonical) -> bool:
        self._require_initialized('should_delete')
        delete = should_delete(connector_record, self.config)
        self.audit.log_delete_decision(connector_record.connector_id, connector_record.dn, delete)
        return delete

    def map_attributes_on_import(self, flow_rule_name: str, connector_record, canonical) -> None:
        """
        Run the import converters for a record coming from a source connector.

        Raises:
            SyncError: If the record's connector is not configured
            ConversionError: If a converter fails
        """
        self._require_initialized('map_attributes_on_import')
        connector = self._connector_for(connector_record)
        logger.debug(f"Map attributes on import - flow rule: {flow_rule_name} | "
                     f"connector: {connector.name} | record: {connector_record.dn}")
        self.pipeline.apply(Direction.IMPORT, canonical, connector_record, connector)

    def map_attributes_on_export(self, flow_rule_name: str, canonical, connector_record) -> None:
        """
        Run the export converters for a record in a target connector.

        Raises:
            SyncError: If the record's connector is not configured
            ConversionError: If a converter fails
        """
        self._require_initialized('map_attributes_on_export')
        connector = self._connector_for(connector_record)
        logger.debug(f"Map attributes on export - flow rule: {flow_rule_name} | "
                     f"connector: {connector.name} | record: {connector_record.dn}")
        self.pipeline.apply(Direction.EXPORT, canonical, connector_record, connector)

    def _connector_for(self, connector_record):
        connector = self.config.connector_by_id(connector_record.connector_id)
        if connector is None:
            configured = ', '.join(c.connector_id for c in self.config.connectors)
            message = (f"No configuration defined for connector '{connector_record.connector_id}' - "
                       f"configured connectors: {configured}")
            logger.error(message)
            raise SyncError(message)
        return connector

    def _require_initialized(self, callback: str):
        if not self.initialized:
            raise SyncError(f"Metaverse sync [{callback}] called before initialize()")


def main(argv=None):
    """Command line entry point for configuration checks and DN dry runs."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description='Metaverse Sync reconciliation engine')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--check-config', action='store_true',
                        help='Validate the configuration and print a summary')
    parser.add_argument('--resolve-dn', metavar='DN',
                        help='Print the DN re-rooted under --target')
    parser.add_argument('--target', help='Target connector name or id for --resolve-dn')

    args = parser.parse_args(argv)

    if not (args.check_config or args.resolve_dn):
        parser.print_help()
        sys.exit(1)

    if args.resolve_dn and not args.target:
        parser.error('--resolve-dn requires --target')

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(2)

    if args.check_config:
        print(json.dumps(config.summary(), indent=2))
        sys.exit(0)

    target = config.connector_by_name(args.target) or config.connector_by_id(args.target)
    if target is None:
        print(f"Unknown target connector: {args.target}")
        sys.exit(1)

    print(resolve_target_dn(args.resolve_dn, target, config.connectors))
    sys.exit(0)


if __name__ == "__main__":
    main()
