"""
Configuration loading and management for Metaverse Sync.

This module loads the solution configuration (connectors and attribute
converters) from a YAML or XML file, validates it, applies defaults and
builds the immutable SolutionConfiguration used by every engine component.
"""

import os
import re
import logging
import xml.etree.ElementTree as ET
from types import MappingProxyType
from typing import Any, Dict, List, NamedTuple, Optional

import yaml
from ldap3.core.exceptions import LDAPException
from ldap3.utils.dn import parse_dn

logger = logging.getLogger(__name__)

CONFIG_FOLDER = 'ConfigFiles'
CONFIG_FILE_NAME = 'sync_config.yaml'
CONFIG_PATH_ENV = 'SYNC_CONFIG_PATH'
LOG_LEVEL_ENV = 'SYNC_LOG_LEVEL'

# Element names of the XML configuration layout
XML_CONNECTORS = './connectors/connector'
XML_IMPORT_ATTRIBUTES = './import/attributes/attribute'
XML_EXPORT_ATTRIBUTES = './export/attributes/attribute'

XML_CONNECTOR_FIELDS = {
    'name': 'name',
    'root': 'root',
    'connector': 'connector_id',
    'target': 'target',
}

XML_CONVERTER_FIELDS = {
    'type': 'type',
    'name': 'attribute',
    'sourcename': 'source_attribute',
    'domainroot': 'domain_root',
    'newvalue': 'new_value',
    'value': 'value',
    'simplevalue': 'simple_value',
}

# $1, ${name}, $$ and $& in .NET replacement strings
DOTNET_SUBSTITUTION = re.compile(r'\$(?:(\d+)|\{(\w+)\}|(\$)|(&))')

LOGGING_DEFAULTS = {
    'level': 'INFO',
    'log_dir': 'logs',
    'rotation': 'daily',
    'retention_days': 7,
    'console_output': True,
    'console_level': 'WARNING',
}

PROVISIONING_DEFAULTS = {
    'object_types': ['person'],
    'target_object_type': 'user',
    'dn_attribute': 'distinguishedName',
    'account_name_attribute': 'accountName',
    'display_name_attribute': 'cn',
    'target_account_name_attribute': 'sAMAccountName',
    'target_display_name_attribute': 'cn',
    'fail_fast': False,
}

# Provisioning settings naming attributes or object types
PROVISIONING_NAME_FIELDS = (
    'target_object_type',
    'dn_attribute',
    'account_name_attribute',
    'display_name_attribute',
    'target_account_name_attribute',
    'target_display_name_attribute',
)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


def as_bool(value: Any) -> bool:
    """Interpret a YAML boolean or an XML 'true'/'false' string."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == 'true'


class ConnectorDescriptor(NamedTuple):
    """One configured connector (directory domain)."""

    name: str
    connector_id: str
    root: str
    target: bool = False

    def is_root_of(self, dn: str) -> bool:
        """Check whether this connector's root is a case-insensitive suffix of a DN."""
        if len(dn) < len(self.root):
            return False
        return dn[len(dn) - len(self.root):].lower() == self.root.lower()


class SolutionConfiguration:
    """
    Validated, read-only solution configuration.

    Built once per engine lifetime, then shared by all components.
    """

    def __init__(self, connectors: List[ConnectorDescriptor],
                 import_converters: Optional[List] = None,
                 export_converters: Optional[List] = None,
                 logging_config: Optional[Dict[str, Any]] = None,
                 provisioning: Optional[Dict[str, Any]] = None):
        self.connectors = tuple(connectors)
        self.targets = tuple(c for c in self.connectors if c.target)
        self._by_name = MappingProxyType({c.name.lower(): c for c in self.connectors})
        self._by_connector_id = MappingProxyType({c.connector_id.lower(): c for c in self.connectors})
        self._import_converters = MappingProxyType(
            {c.attribute.lower(): c for c in (import_converters or [])})
        self._export_converters = MappingProxyType(
            {c.attribute.lower(): c for c in (export_converters or [])})
        self.logging = MappingProxyType(dict(logging_config or LOGGING_DEFAULTS))
        self.provisioning = MappingProxyType(dict(provisioning or PROVISIONING_DEFAULTS))

    def connector_by_name(self, name: str) -> Optional[ConnectorDescriptor]:
        return self._by_name.get(name.lower())

    def connector_by_id(self, connector_id: str) -> Optional[ConnectorDescriptor]:
        return self._by_connector_id.get(connector_id.lower())

    @property
    def import_converters(self):
        """Import converters keyed by the attribute they write."""
        return self._import_converters

    @property
    def export_converters(self):
        """Export converters keyed by the attribute they write."""
        return self._export_converters

    def converters(self, direction) -> List:
        """
        Converters of one direction, in configuration order.

        Raises:
            ValueError: If direction is not a Direction member
        """
        from metaverse_sync.converters import Direction

        by_direction = {
            Direction.IMPORT: self._import_converters,
            Direction.EXPORT: self._export_converters,
        }
        if direction not in by_direction:
            raise ValueError(f"Unknown attribute flow direction: {direction!r}")
        return list(by_direction[direction].values())

    def summary(self) -> Dict[str, Any]:
        """Plain dictionary description, suitable for JSON output."""
        return {
            'connectors': [c._asdict() for c in self.connectors],
            'targets': [c.name for c in self.targets],
            'converters': {
                'import': [c.attribute for c in self._import_converters.values()],
                'export': [c.attribute for c in self._export_converters.values()],
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SolutionConfiguration':
        """
        Validate a parsed configuration document and build the configuration.

        Args:
            data: Configuration dictionary (YAML layout)

        Returns:
            Fully validated configuration

        Raises:
            ConfigurationError: If any declaration is invalid; all problems
                found are reported together
        """
        # Registers the built-in converter kinds
        from metaverse_sync.converters import Direction, create_converter

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration document must be a mapping")

        errors = []
        connectors = cls._build_connectors(data.get('connectors') or [], errors)

        converters_data = data.get('converters') or {}
        if not isinstance(converters_data, dict):
            errors.append("'converters' must be a mapping with 'import' and 'export' lists")
            converters_data = {}

        converters = {}
        for direction in Direction:
            converters[direction] = []
            seen = set()
            for i, entry in enumerate(converters_data.get(direction.value) or []):
                prefix = f"converters.{direction.value}[{i}]"
                try:
                    converter = create_converter(entry, direction)
                except ConfigurationError as e:
                    errors.append(f"{prefix}: {e}")
                    continue
                key = converter.attribute.lower()
                if key in seen:
                    errors.append(f"{prefix}: duplicate {direction.value} converter "
                                  f"for attribute '{converter.attribute}'")
                    continue
                seen.add(key)
                converters[direction].append(converter)

        logging_config = cls._build_section('logging', data.get('logging'), LOGGING_DEFAULTS, errors)
        provisioning = cls._build_provisioning(data.get('provisioning'), errors)

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" +
                                     "\n".join(f"  - {error}" for error in errors))

        configuration = cls(
            connectors,
            import_converters=converters[Direction.IMPORT],
            export_converters=converters[Direction.EXPORT],
            logging_config=logging_config,
            provisioning=provisioning,
        )
        if not configuration.targets:
            logger.warning("No target connectors configured, provisioning will not create records")
        return configuration

    @staticmethod
    def _build_section(name: str, section: Any, defaults: Dict[str, Any],
                       errors: List[str]) -> Dict[str, Any]:
        """Merge an optional mapping section over its defaults."""
        merged = dict(defaults)
        if section is None:
            return merged
        if not isinstance(section, dict):
            errors.append(f"'{name}' must be a mapping, got {type(section).__name__}")
            return merged
        merged.update(section)
        return merged

    @classmethod
    def _build_provisioning(cls, section: Any, errors: List[str]) -> Dict[str, Any]:
        provisioning = cls._build_section('provisioning', section, PROVISIONING_DEFAULTS, errors)

        object_types = provisioning['object_types']
        if (not isinstance(object_types, list) or not object_types
                or not all(isinstance(t, str) and t.strip() for t in object_types)):
            errors.append("provisioning.object_types: must be a non-empty list of object type names")
        else:
            provisioning['object_types'] = [t.strip().lower() for t in object_types]

        for key in PROVISIONING_NAME_FIELDS:
            value = provisioning[key]
            if not isinstance(value, str) or not value.strip():
                errors.append(f"provisioning.{key}: must be a non-empty string, got {value!r}")

        provisioning['fail_fast'] = as_bool(provisioning['fail_fast'])
        return provisioning

    @staticmethod
    def _build_connectors(entries: List[Any], errors: List[str]) -> List[ConnectorDescriptor]:
        if not entries:
            errors.append("At least one connector must be configured")
            return []

        connectors = []
        names = set()
        connector_ids = set()
        for i, entry in enumerate(entries):
            prefix = f"connectors[{i}]"
            if not isinstance(entry, dict):
                errors.append(f"{prefix}: connector declaration must be a mapping")
                continue

            missing = [field for field in ('name', 'connector_id', 'root') if not entry.get(field)]
            if missing:
                errors.append(f"Missing required field(s) {', '.join(missing)} for {prefix}")
                continue

            descriptor = ConnectorDescriptor(
                name=str(entry['name']),
                connector_id=str(entry['connector_id']),
                root=str(entry['root']).strip(),
                target=as_bool(entry.get('target', False)),
            )

            try:
                parse_dn(descriptor.root)
            except LDAPException as e:
                errors.append(f"{prefix}: root '{descriptor.root}' is not a valid DN: {e}")
                continue

            if descriptor.name.lower() in names:
                errors.append(f"{prefix}: duplicate connector name '{descriptor.name}'")
                continue
            if descriptor.connector_id.lower() in connector_ids:
                errors.append(f"{prefix}: duplicate connector id '{descriptor.connector_id}'")
                continue

            names.add(descriptor.name.lower())
            connector_ids.add(descriptor.connector_id.lower())
            connectors.append(descriptor)
        return connectors


class ConfigLoader:
    """Handles loading and validation of the solution configuration file."""

    def __init__(self, config_path: Optional[str] = None, base_dir: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses the SYNC_CONFIG_PATH
                env var or ConfigFiles/sync_config.yaml under base_dir
            base_dir: Directory the default location is relative to
                (defaults to the current directory)
        """
        default_path = os.path.join(base_dir or os.getcwd(), CONFIG_FOLDER, CONFIG_FILE_NAME)
        self.config_path = config_path or os.getenv(CONFIG_PATH_ENV) or default_path
        self.data = {}

    def load(self) -> SolutionConfiguration:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Validated SolutionConfiguration

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        logger.debug(f"Loading configuration from {self.config_path}")
        if self.config_path.lower().endswith('.xml'):
            self.data = self._read_xml()
        else:
            self.data = self._read_yaml()

        self._apply_env_overrides()

        configuration = SolutionConfiguration.from_dict(self.data)
        logger.info(f"Configuration loaded successfully from {self.config_path}: "
                    f"{len(configuration.connectors)} connectors, "
                    f"{len(configuration.targets)} targets")
        return configuration

    def _read_yaml(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        return data or {}

    def _read_xml(self) -> Dict[str, Any]:
        try:
            root = ET.parse(self.config_path).getroot()
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except ET.ParseError as e:
            raise ConfigurationError(f"Invalid XML in config file: {e}")
        return xml_to_dict(root)

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        level = os.getenv(LOG_LEVEL_ENV)
        if level and isinstance(self.data, dict):
            # A bare 'logging:' key loads as None
            if self.data.get('logging') is None:
                self.data['logging'] = {}
            if not isinstance(self.data['logging'], dict):
                return
            self.data['logging']['level'] = level
            logger.debug(f"Applied environment override for logging.level: {level}")


def _element_fields(element: ET.Element, field_map: Dict[str, str]) -> Dict[str, str]:
    fields = {}
    for child in element:
        key = field_map.get(child.tag.lower())
        if key:
            fields[key] = (child.text or '').strip()
    return fields


def dotnet_replacement(text: str) -> str:
    """
    Translate a .NET regex replacement string into re.sub template syntax.

    Handles $n, ${name}, $& and $$. Backslashes are literal in .NET
    replacements and are escaped.

    Example:
        dotnet_replacement('$1@contoso.com')  # -> '\\g<1>@contoso.com'
    """
    def substitute(match):
        number, name, dollar, whole = match.groups()
        if dollar:
            return '$'
        if whole:
            return r'\g<0>'
        return rf'\g<{number or name}>'

    return DOTNET_SUBSTITUTION.sub(substitute, text.replace('\\', '\\\\'))


def _converter_fields(element: ET.Element) -> Dict[str, str]:
    fields = _element_fields(element, XML_CONVERTER_FIELDS)
    # The XML layout carries .NET replacement syntax
    if fields.get('new_value'):
        fields['new_value'] = dotnet_replacement(fields['new_value'])
    return fields


def xml_to_dict(root: ET.Element) -> Dict[str, Any]:
    """
    Convert the XML configuration layout into the YAML dictionary layout.

    Expected layout:
        <config>
          <connectors><connector><name/><root/><connector/><target/></connector></connectors>
          <import><attributes><attribute><type/>...</attribute></attributes></import>
          <export><attributes><attribute><type/>...</attribute></attributes></export>
        </config>
    """
    return {
        'connectors': [_element_fields(e, XML_CONNECTOR_FIELDS)
                       for e in root.findall(XML_CONNECTORS)],
        'converters': {
            'import': [_converter_fields(e) for e in root.findall(XML_IMPORT_ATTRIBUTES)],
            'export': [_converter_fields(e) for e in root.findall(XML_EXPORT_ATTRIBUTES)],
        },
    }


def load_config(config_path: Optional[str] = None, base_dir: Optional[str] = None) -> SolutionConfiguration:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file
        base_dir: Directory the default config location is relative to

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader(config_path, base_dir)
    return loader.load()
