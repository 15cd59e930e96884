"""
Attribute lookup in SAML assertions.

Finds the values of a configured attribute across every attribute statement of
an assertion and turns them into strings. NameID values are serialized to their
``saml2:NameID`` XML form; values of any other shape are skipped.
"""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional

from eptid_sync.config import ATTRIBUTE_FRIENDLY_NAME, ATTRIBUTE_NAME
from eptid_sync.saml import (
    Assertion,
    Attribute,
    AttributeValue,
    PlainString,
    StructuredIdentifier,
    UnsupportedValue,
    serialize_name_id,
)

logger = logging.getLogger(__name__)

# Key of the assertion in the broker context data
SAML_ASSERTION = 'SAML_ASSERTION'


class AttributeSelector:
    """Identifies the attribute to look for by name and/or friendly name."""

    def __init__(self, name: Optional[str] = None, friendly_name: Optional[str] = None):
        self.name = name
        self.friendly_name = friendly_name

    def is_empty(self) -> bool:
        return not self.name and not self.friendly_name

    def matches(self, attribute: Attribute) -> bool:
        """
        Check whether an assertion attribute is the one selected.

        The selector name is compared against both the name and the friendly name
        of the attribute. The selector friendly name only describes the attribute
        and takes no part in matching. An unset name never matches.
        """
        if not self.name:
            return False
        return attribute.name == self.name or attribute.friendly_name == self.name

    def __repr__(self):
        return f"AttributeSelector(name={self.name!r}, friendly_name={self.friendly_name!r})"


def resolve_selector_name(config: Mapping[str, Any]) -> Optional[str]:
    """
    Pick the lookup key from mapper configuration.

    The configured attribute name wins; the friendly name is used only when the
    name is missing or null.
    """
    attribute_name = config.get(ATTRIBUTE_NAME)
    if attribute_name is None:
        attribute_name = config.get(ATTRIBUTE_FRIENDLY_NAME)
    return attribute_name


def _matching_attributes(selector: AttributeSelector, assertion: Assertion) -> Iterator[Attribute]:
    for statement in assertion.attribute_statements:
        for attribute in statement.attributes:
            if selector.matches(attribute):
                yield attribute


def value_to_string(value: AttributeValue) -> Optional[str]:
    """
    Convert one attribute value to its string form.

    Returns:
        The string, or None when the value is dropped
    """
    if isinstance(value, PlainString):
        return value.value
    elif isinstance(value, StructuredIdentifier):
        return serialize_name_id(value.name_id)
    elif isinstance(value, UnsupportedValue):
        logger.debug(f"Skipping unsupported attribute value {value!r}")
        return None
    else:
        logger.debug(f"Skipping attribute value of unknown type {type(value).__name__}")
        return None


def locate(selector: AttributeSelector, assertion: Assertion) -> List[str]:
    """
    Collect the string values of the selected attribute.

    Values keep the order in which they appear across the attribute statements.

    Args:
        selector: Attribute to look for
        assertion: Assertion to search

    Returns:
        List of values, possibly empty
    """
    if selector.is_empty():
        logger.debug("Attribute selector has neither name nor friendly name, nothing to locate")
        return []

    located = []
    for attribute in _matching_attributes(selector, assertion):
        for value in attribute.values:
            string_value = value_to_string(value)
            if string_value is not None:
                located.append(string_value)

    logger.debug(f"Located {len(located)} value(s) for {selector!r}")
    return located


def is_attribute_present(selector: AttributeSelector, assertion: Assertion) -> bool:
    """Check whether the assertion carries the selected attribute at all."""
    if selector.is_empty():
        return False
    return any(True for _ in _matching_attributes(selector, assertion))


def locate_in_context(selector: AttributeSelector, context_data: Dict[str, Any]) -> Optional[List[str]]:
    """
    Locate attribute values in the assertion held by a broker context.

    Args:
        selector: Attribute to look for
        context_data: Broker context data holding the assertion under SAML_ASSERTION

    Returns:
        Located values, or None when the assertion no longer carries the attribute

    Raises:
        KeyError: If the context data holds no assertion
    """
    assertion = context_data[SAML_ASSERTION]
    if not is_attribute_present(selector, assertion):
        logger.debug(f"Assertion {assertion.assertion_id} does not carry {selector!r}")
        return None
    return locate(selector, assertion)
