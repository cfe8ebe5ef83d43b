"""
Pattern replace converter.

Applies one regular expression substitution to the input value. With the
domain_root flag the active connector's root path takes the place of either
the replacement (export) or the pattern (import), which is how DNs are moved
between a domain-relative and a root-independent canonical form.
"""

import logging
import re
from typing import Any, Dict, Optional

from ..config import ConfigurationError, as_bool
from .base import AttributeConverter, ConversionError, Direction, register_converter

logger = logging.getLogger(__name__)


@register_converter('replace')
class ReplaceConverter(AttributeConverter):
    """
    Regular expression replace converter.

    Configuration fields:
        attribute: Attribute written
        source_attribute: Attribute read (optional)
        value: Regular expression to match
        simple_value: Literal text to match (escaped, takes precedence over value)
        new_value: Replacement template (re.sub syntax)
        domain_root: Use the connector root instead of value (import) or
            new_value (export)
    """

    def __init__(self, attribute: str, direction: Direction,
                 source_attribute: Optional[str] = None,
                 value: Optional[str] = None,
                 new_value: Optional[str] = None,
                 use_domain_root: bool = False):
        super().__init__(attribute, direction, source_attribute)
        self.value = value
        self.new_value = new_value
        self.use_domain_root = use_domain_root
        self.pattern = re.compile(value) if value else None

    @classmethod
    def from_config(cls, entry: Dict[str, Any], direction: Direction) -> 'ReplaceConverter':
        attribute = entry.get('attribute')
        if not attribute:
            raise ConfigurationError("Missing required field 'attribute'")

        value = entry.get('value')
        if entry.get('simple_value'):
            value = re.escape(str(entry['simple_value']))
        new_value = entry.get('new_value')
        use_domain_root = as_bool(entry.get('domain_root', False))

        if direction == Direction.EXPORT:
            if not value or (not new_value and not use_domain_root):
                raise ConfigurationError(
                    f"Export converter '{attribute}' requires 'value' or 'simple_value' "
                    f"and either 'new_value' or 'domain_root'"
                )
        else:
            if not new_value or (not value and not use_domain_root):
                raise ConfigurationError(
                    f"Import converter '{attribute}' requires 'new_value' "
                    f"and either 'value', 'simple_value' or 'domain_root'"
                )

        try:
            return cls(
                attribute=str(attribute),
                direction=direction,
                source_attribute=entry.get('source_attribute'),
                value=str(value) if value else None,
                new_value=str(new_value) if new_value else None,
                use_domain_root=use_domain_root,
            )
        except re.error as e:
            raise ConfigurationError(f"Converter '{attribute}' has an invalid pattern '{value}': {e}")

    def effective_substitution(self, connector):
        """
        Return the (compiled pattern, replacement) pair for a connector.

        The replacement is either a re.sub template string or a callable
        returning the connector root verbatim.
        """
        if not self.use_domain_root:
            return self.pattern, self.new_value

        if self.direction == Direction.EXPORT:
            root = connector.root
            return self.pattern, lambda match: root

        # Root is anchored to the end of the value; roots compare case-insensitively
        pattern = re.compile(re.escape(connector.root) + '$', re.IGNORECASE)
        return pattern, self.new_value

    def convert(self, canonical, connector_record, connector) -> None:
        logger.debug(f"Converter: mapping {self.source_attribute} to {self.attribute} (starting)")
        input_value = self.read_input(canonical, connector_record)
        pattern, replacement = self.effective_substitution(connector)

        try:
            target_value = pattern.sub(replacement, input_value, count=1)
        except (re.error, IndexError) as e:
            raise ConversionError(
                f"Converter '{self.attribute}': invalid replacement '{self.new_value}': {e}"
            )

        logger.debug(f"Converter: mapping {self.source_attribute} to {self.attribute}, "
                     f"input value '{input_value}' translated to '{target_value}'")
        self.write_output(canonical, connector_record, target_value)
