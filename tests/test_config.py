#!/usr/bin/env python3
"""
Unit tests for the configuration module.

Covers YAML and XML loading, connector and converter validation, defaults and
environment variable overrides.
"""

import os
import sys
import tempfile
import yaml
import unittest
from unittest.mock import patch
from typing import Dict, Any

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from metaverse_sync.config import (
    ConfigLoader,
    ConfigurationError,
    ConnectorDescriptor,
    SolutionConfiguration,
    dotnet_replacement,
    load_config,
)
from metaverse_sync.converters import Direction, ReplaceConverter

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

XML_CONFIG = """<?xml version="1.0" encoding="utf-8"?>
<config>
  <connectors>
    <connector>
      <name>Fabrikam</name>
      <root>DC=fabrikam,DC=org</root>
      <connector>FABRIKAM-AD</connector>
      <target>false</target>
    </connector>
    <connector>
      <name>Contoso</name>
      <root>DC=contoso,DC=com</root>
      <connector>CONTOSO-AD</connector>
      <target>TRUE</target>
    </connector>
  </connectors>
  <import>
    <attributes>
      <attribute>
        <type>Replace</type>
        <name>distinguishedName</name>
        <sourcename>DN</sourcename>
        <domainroot>true</domainroot>
        <newvalue>%ROOT%</newvalue>
      </attribute>
    </attributes>
  </import>
  <export>
    <attributes>
      <attribute>
        <type>replace</type>
        <name>mail</name>
        <simplevalue>@fabrikam.org</simplevalue>
        <newvalue>@contoso.com</newvalue>
      </attribute>
    </attributes>
  </export>
</config>
"""


class TestConfigLoader(unittest.TestCase):
    """Test cases for ConfigLoader and SolutionConfiguration."""

    def setUp(self):
        """Set up test fixtures."""
        self.valid_config = {
            'connectors': [
                {
                    'name': 'Fabrikam',
                    'connector_id': 'FABRIKAM-AD',
                    'root': 'DC=fabrikam,DC=org',
                    'target': False
                },
                {
                    'name': 'Contoso',
                    'connector_id': 'CONTOSO-AD',
                    'root': 'DC=contoso,DC=com',
                    'target': True
                }
            ],
            'converters': {
                'import': [
                    {
                        'type': 'replace',
                        'attribute': 'distinguishedName',
                        'source_attribute': 'DN',
                        'domain_root': True,
                        'new_value': '%ROOT%'
                    }
                ],
                'export': [
                    {
                        'type': 'replace',
                        'attribute': 'manager',
                        'source_attribute': 'managerDN',
                        'value': '%ROOT%$',
                        'domain_root': True
                    },
                    {
                        'type': 'replace',
                        'attribute': 'mail',
                        'simple_value': '@fabrikam.org',
                        'new_value': '@contoso.com'
                    }
                ]
            }
        }
        self.temp_files = []

    def tearDown(self):
        for path in self.temp_files:
            if os.path.exists(path):
                os.unlink(path)

    def create_test_config(self, config_data: Dict[str, Any]) -> str:
        """Create a temporary config file with the given data."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.safe_dump(config_data, f)
            self.temp_files.append(f.name)
            return f.name

    def create_xml_config(self, content: str) -> str:
        with tempfile.NamedTemporaryFile(mode='w', suffix='.xml', delete=False) as f:
            f.write(content)
            self.temp_files.append(f.name)
            return f.name

    def test_load_valid_config_file(self):
        """Test loading a valid YAML configuration."""
        config = ConfigLoader(self.create_test_config(self.valid_config)).load()

        self.assertEqual([c.name for c in config.connectors], ['Fabrikam', 'Contoso'])
        self.assertEqual([c.name for c in config.targets], ['Contoso'])
        self.assertEqual(config.connector_by_id('CONTOSO-AD').root, 'DC=contoso,DC=com')
        self.assertEqual(list(config.import_converters), ['distinguishedname'])
        self.assertEqual([c.attribute for c in config.converters(Direction.EXPORT)],
                         ['manager', 'mail'])

    def test_lookups_are_case_insensitive(self):
        config = SolutionConfiguration.from_dict(self.valid_config)

        self.assertIs(config.connector_by_name('contoso'), config.connector_by_name('CONTOSO'))
        self.assertIsNotNone(config.connector_by_id('fabrikam-ad'))
        self.assertIsNone(config.connector_by_id('NORTHWIND-AD'))

    def test_configuration_is_read_only(self):
        config = SolutionConfiguration.from_dict(self.valid_config)

        self.assertIsInstance(config.connectors, tuple)
        with self.assertRaises(TypeError):
            config.import_converters['mail'] = None
        with self.assertRaises(TypeError):
            config.provisioning['fail_fast'] = True

    def test_converter_fields_parsed(self):
        config = SolutionConfiguration.from_dict(self.valid_config)

        importer = config.import_converters['distinguishedname']
        self.assertIsInstance(importer, ReplaceConverter)
        self.assertEqual(importer.direction, Direction.IMPORT)
        self.assertEqual(importer.source_attribute, 'DN')
        self.assertTrue(importer.use_domain_root)

        mail = config.export_converters['mail']
        self.assertEqual(mail.source_attribute, 'mail')
        self.assertEqual(mail.value, r'@fabrikam\.org')

    def test_default_values_applied(self):
        config = SolutionConfiguration.from_dict(self.valid_config)

        self.assertEqual(config.logging['level'], 'INFO')
        self.assertEqual(config.logging['retention_days'], 7)
        self.assertEqual(config.provisioning['object_types'], ['person'])
        self.assertEqual(config.provisioning['target_account_name_attribute'], 'sAMAccountName')
        self.assertFalse(config.provisioning['fail_fast'])

    def test_provisioning_overrides(self):
        self.valid_config['provisioning'] = {'object_types': ['Person', 'Contact'], 'fail_fast': 'true'}
        config = SolutionConfiguration.from_dict(self.valid_config)

        self.assertEqual(config.provisioning['object_types'], ['person', 'contact'])
        self.assertTrue(config.provisioning['fail_fast'])
        self.assertEqual(config.provisioning['dn_attribute'], 'distinguishedName')

    def test_object_types_must_be_a_list(self):
        """A scalar object_types is rejected instead of being split into characters."""
        self.valid_config['provisioning'] = {'object_types': 'person'}

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('provisioning.object_types', str(context.exception))

    def test_object_types_must_not_be_empty(self):
        for object_types in ([], [''], ['person', 3], None):
            self.valid_config['provisioning'] = {'object_types': object_types}

            with self.assertRaises(ConfigurationError) as context:
                SolutionConfiguration.from_dict(self.valid_config)
            self.assertIn('provisioning.object_types', str(context.exception))

    def test_provisioning_attribute_names_required(self):
        for key in ('dn_attribute', 'account_name_attribute', 'target_object_type',
                    'target_account_name_attribute', 'target_display_name_attribute'):
            for value in ('', '  ', None, ['cn']):
                self.valid_config['provisioning'] = {key: value}

                with self.assertRaises(ConfigurationError) as context:
                    SolutionConfiguration.from_dict(self.valid_config)
                self.assertIn(f'provisioning.{key}', str(context.exception))

    def test_provisioning_section_must_be_mapping(self):
        self.valid_config['provisioning'] = ['fail_fast']

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn("'provisioning' must be a mapping", str(context.exception))

    def test_logging_section_must_be_mapping(self):
        self.valid_config['logging'] = 'debug'

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn("'logging' must be a mapping", str(context.exception))

    def test_empty_sections_use_defaults(self):
        self.valid_config['logging'] = None
        self.valid_config['provisioning'] = None
        config = SolutionConfiguration.from_dict(self.valid_config)

        self.assertEqual(config.logging['level'], 'INFO')
        self.assertEqual(config.provisioning['object_types'], ['person'])

    def test_section_errors_reported_with_other_errors(self):
        del self.valid_config['connectors'][0]['root']
        self.valid_config['logging'] = 'debug'
        self.valid_config['provisioning'] = {'object_types': 'person'}

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        message = str(context.exception)
        self.assertIn('connectors[0]', message)
        self.assertIn("'logging'", message)
        self.assertIn('provisioning.object_types', message)

    def test_missing_config_file(self):
        with self.assertRaises(ConfigurationError) as context:
            ConfigLoader('/nonexistent/sync_config.yaml').load()
        self.assertIn('not found', str(context.exception))

    def test_invalid_yaml_format(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write("connectors: [\n  - name: broken\n")
            self.temp_files.append(f.name)

        with self.assertRaises(ConfigurationError) as context:
            ConfigLoader(f.name).load()
        self.assertIn('YAML', str(context.exception))

    def test_invalid_xml_format(self):
        path = self.create_xml_config("<config><connectors></config>")

        with self.assertRaises(ConfigurationError) as context:
            ConfigLoader(path).load()
        self.assertIn('XML', str(context.exception))

    def test_no_connectors_configured(self):
        self.valid_config['connectors'] = []

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('At least one connector', str(context.exception))

    def test_missing_connector_fields(self):
        del self.valid_config['connectors'][1]['root']

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('connectors[1]', str(context.exception))
        self.assertIn('root', str(context.exception))

    def test_duplicate_connector_id(self):
        self.valid_config['connectors'][1]['connector_id'] = 'fabrikam-ad'

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('duplicate connector id', str(context.exception))

    def test_invalid_root_dn(self):
        self.valid_config['connectors'][0]['root'] = 'not a dn'

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('not a valid DN', str(context.exception))

    def test_export_converter_without_replacement(self):
        """An export converter with neither new_value nor domain_root fails at load time."""
        self.valid_config['converters']['export'] = [
            {'type': 'replace', 'attribute': 'manager', 'value': 'DC=fabrikam,DC=org$'}
        ]

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('converters.export[0]', str(context.exception))

    def test_export_converter_without_pattern(self):
        self.valid_config['converters']['export'] = [
            {'type': 'replace', 'attribute': 'manager', 'domain_root': True}
        ]

        with self.assertRaises(ConfigurationError):
            SolutionConfiguration.from_dict(self.valid_config)

    def test_import_converter_without_new_value(self):
        self.valid_config['converters']['import'] = [
            {'type': 'replace', 'attribute': 'distinguishedName', 'domain_root': True}
        ]

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('converters.import[0]', str(context.exception))

    def test_import_converter_without_pattern_or_domain_root(self):
        self.valid_config['converters']['import'] = [
            {'type': 'replace', 'attribute': 'distinguishedName', 'new_value': '%ROOT%'}
        ]

        with self.assertRaises(ConfigurationError):
            SolutionConfiguration.from_dict(self.valid_config)

    def test_unknown_converter_type(self):
        self.valid_config['converters']['import'][0]['type'] = 'lowercase'

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn("Unknown converter type 'lowercase'", str(context.exception))

    def test_missing_converter_type(self):
        del self.valid_config['converters']['export'][0]['type']

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn("'type'", str(context.exception))

    def test_invalid_converter_pattern(self):
        self.valid_config['converters']['export'][1] = {
            'type': 'replace', 'attribute': 'mail', 'value': '([a-z', 'new_value': 'x'
        }

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('invalid pattern', str(context.exception))

    def test_duplicate_converter_attribute(self):
        self.valid_config['converters']['export'].append({
            'type': 'replace', 'attribute': 'MAIL', 'value': 'a', 'new_value': 'b'
        })

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        self.assertIn('converters.export[2]', str(context.exception))

    def test_all_errors_reported_together(self):
        del self.valid_config['connectors'][0]['name']
        self.valid_config['converters']['import'][0]['type'] = 'unknown'

        with self.assertRaises(ConfigurationError) as context:
            SolutionConfiguration.from_dict(self.valid_config)
        message = str(context.exception)
        self.assertIn('connectors[0]', message)
        self.assertIn('converters.import[0]', message)

    def test_load_xml_config(self):
        config = ConfigLoader(self.create_xml_config(XML_CONFIG)).load()

        self.assertEqual(config.connectors[0],
                         ConnectorDescriptor('Fabrikam', 'FABRIKAM-AD', 'DC=fabrikam,DC=org', False))
        self.assertTrue(config.connector_by_name('Contoso').target)
        self.assertEqual(config.import_converters['distinguishedname'].new_value, '%ROOT%')
        self.assertEqual(config.export_converters['mail'].value, r'@fabrikam\.org')

    def test_config_from_environment_path(self):
        path = self.create_test_config(self.valid_config)

        with patch.dict(os.environ, {'SYNC_CONFIG_PATH': path}):
            loader = ConfigLoader()
            self.assertEqual(loader.config_path, path)
            self.assertEqual(len(loader.load().connectors), 2)

    def test_default_config_location(self):
        with patch.dict(os.environ):
            os.environ.pop('SYNC_CONFIG_PATH', None)
            loader = ConfigLoader(base_dir='/opt/sync')
        self.assertEqual(loader.config_path,
                         os.path.join('/opt/sync', 'ConfigFiles', 'sync_config.yaml'))

    def test_log_level_environment_override(self):
        path = self.create_test_config(self.valid_config)

        with patch.dict(os.environ, {'SYNC_LOG_LEVEL': 'DEBUG'}):
            config = load_config(path)
        self.assertEqual(config.logging['level'], 'DEBUG')

    def test_log_level_override_with_empty_logging_section(self):
        """A bare 'logging:' key still takes the environment log level."""
        path = self.create_test_config(self.valid_config)
        with open(path, 'a') as f:
            f.write('logging:\n')

        with patch.dict(os.environ, {'SYNC_LOG_LEVEL': 'DEBUG'}):
            config = load_config(path)
        self.assertEqual(config.logging['level'], 'DEBUG')
        self.assertEqual(config.logging['retention_days'], 7)

    def test_log_level_override_with_invalid_logging_section(self):
        self.valid_config['logging'] = 'debug'
        path = self.create_test_config(self.valid_config)

        with patch.dict(os.environ, {'SYNC_LOG_LEVEL': 'DEBUG'}):
            with self.assertRaises(ConfigurationError) as context:
                load_config(path)
        self.assertIn("'logging' must be a mapping", str(context.exception))

    def test_converters_by_direction(self):
        config = SolutionConfiguration.from_dict(self.valid_config)

        self.assertEqual([c.attribute for c in config.converters(Direction.IMPORT)],
                         ['distinguishedName'])
        self.assertEqual([c.attribute for c in config.converters(Direction.EXPORT)],
                         ['manager', 'mail'])
        with self.assertRaises(ValueError):
            config.converters('import')

    def test_xml_replacement_syntax_translated(self):
        """XML newvalue uses .NET group references, translated to re.sub syntax."""
        content = XML_CONFIG.replace(
            '<simplevalue>@fabrikam.org</simplevalue>\n        <newvalue>@contoso.com</newvalue>',
            '<value>^(\\w+)\\.(?P&lt;last&gt;\\w+)@fabrikam\\.org$</value>\n'
            '        <newvalue>${last}.$1@contoso.com</newvalue>'
        )
        config = ConfigLoader(self.create_xml_config(content)).load()
        converter = config.export_converters['mail']

        self.assertEqual(converter.new_value, r'\g<last>.\g<1>@contoso.com')
        self.assertEqual(converter.pattern.sub(converter.new_value, 'jane.doe@fabrikam.org', count=1),
                         'doe.jane@contoso.com')

    def test_summary(self):
        summary = SolutionConfiguration.from_dict(self.valid_config).summary()

        self.assertEqual(summary['targets'], ['Contoso'])
        self.assertEqual(summary['connectors'][0]['connector_id'], 'FABRIKAM-AD')
        self.assertEqual(summary['converters']['export'], ['manager', 'mail'])

    def test_shipped_config_files(self):
        """The example configuration files in ConfigFiles load cleanly."""
        yaml_config = load_config(os.path.join(PROJECT_DIR, 'ConfigFiles', 'sync_config.yaml'))
        xml_config = load_config(os.path.join(PROJECT_DIR, 'ConfigFiles', 'sync_config.xml'))

        self.assertEqual(yaml_config.connectors, xml_config.connectors)
        self.assertEqual([c.name for c in yaml_config.targets], ['Contoso'])


class TestDotnetReplacement(unittest.TestCase):
    """Test cases for dotnet_replacement."""

    def test_numbered_group(self):
        self.assertEqual(dotnet_replacement('$1@contoso.com'), r'\g<1>@contoso.com')

    def test_named_group(self):
        self.assertEqual(dotnet_replacement('${user}-x'), r'\g<user>-x')

    def test_whole_match_and_escaped_dollar(self):
        self.assertEqual(dotnet_replacement('[$&] costs $$5'), r'[\g<0>] costs $5')

    def test_backslash_is_literal(self):
        self.assertEqual(dotnet_replacement('CN=a\\,b'), 'CN=a\\\\,b')

    def test_plain_text_unchanged(self):
        self.assertEqual(dotnet_replacement('%ROOT%'), '%ROOT%')


if __name__ == '__main__':
    unittest.main()
