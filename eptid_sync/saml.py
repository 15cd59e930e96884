"""
SAML assertion object model and XML helpers.

This module holds the small subset of the SAML 2.0 assertion model the mapper
works with: attribute statements, attributes and their values. Attribute values
are modelled as an explicit sum type so that consumers handle plain strings,
NameID elements and every other shape as separate, visible cases.
"""

import logging
import xml.etree.ElementTree as ET
from enum import Enum
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

ASSERTION_NS = 'urn:oasis:names:tc:SAML:2.0:assertion'
PROTOCOL_NS = 'urn:oasis:names:tc:SAML:2.0:protocol'
XSI_NS = 'http://www.w3.org/2001/XMLSchema-instance'
ASSERTION_PREFIX = 'saml2'

ET.register_namespace(ASSERTION_PREFIX, ASSERTION_NS)


def _qname(namespace: str, tag: str) -> str:
    return f'{{{namespace}}}{tag}'


class SAMLParseError(Exception):
    """Raised when an assertion document cannot be read."""
    pass


class NameFormat(Enum):
    """Attribute name formats that can be put on a RequestedAttribute."""

    ATTRIBUTE_FORMAT_BASIC = 'urn:oasis:names:tc:SAML:2.0:attrname-format:basic'
    ATTRIBUTE_FORMAT_URI = 'urn:oasis:names:tc:SAML:2.0:attrname-format:uri'
    ATTRIBUTE_FORMAT_UNSPECIFIED = 'urn:oasis:names:tc:SAML:2.0:attrname-format:unspecified'

    @classmethod
    def from_config(cls, value: Optional[str]) -> 'NameFormat':
        """
        Look up a name format from its configured name.

        Accepts the member name (``ATTRIBUTE_FORMAT_URI``), its short form (``URI``)
        or the format URI itself. ``None`` selects the basic format.

        Raises:
            ValueError: If the value names no known format
        """
        if value is None:
            return cls.ATTRIBUTE_FORMAT_BASIC

        candidate = value.strip()
        for member in cls:
            if candidate == member.value:
                return member

        key = candidate.upper()
        if not key.startswith('ATTRIBUTE_FORMAT_'):
            key = f'ATTRIBUTE_FORMAT_{key}'
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown attribute name format: {value}")


class NameID:
    """Represents saml2:NameID"""

    def __init__(self, value: str, format: Optional[str] = None,
                 name_qualifier: Optional[str] = None,
                 sp_name_qualifier: Optional[str] = None,
                 sp_provided_id: Optional[str] = None):
        self.value = value
        self.format = format
        self.name_qualifier = name_qualifier
        self.sp_name_qualifier = sp_name_qualifier
        self.sp_provided_id = sp_provided_id

    def __eq__(self, other):
        if not isinstance(other, NameID):
            return False
        return (self.value == other.value and
                self.format == other.format and
                self.name_qualifier == other.name_qualifier and
                self.sp_name_qualifier == other.sp_name_qualifier and
                self.sp_provided_id == other.sp_provided_id)

    def __repr__(self):
        return f"NameID(format={self.format!r}, name_qualifier={self.name_qualifier!r})"


class AttributeValue:
    """Base class of the attribute value variants."""

    __slots__ = ()


class PlainString(AttributeValue):
    """An attribute value carried as text content."""

    __slots__ = ('value',)

    def __init__(self, value: str):
        self.value = value

    def __eq__(self, other):
        return isinstance(other, PlainString) and self.value == other.value

    def __repr__(self):
        return f"PlainString({self.value!r})"


class StructuredIdentifier(AttributeValue):
    """An attribute value holding a saml2:NameID element."""

    __slots__ = ('name_id',)

    def __init__(self, name_id: NameID):
        self.name_id = name_id

    def __eq__(self, other):
        return isinstance(other, StructuredIdentifier) and self.name_id == other.name_id

    def __repr__(self):
        return f"StructuredIdentifier({self.name_id!r})"


class UnsupportedValue(AttributeValue):
    """Any other attribute value shape: nested elements other than a single NameID, or xsi:nil values."""

    __slots__ = ('raw',)

    def __init__(self, raw=None):
        self.raw = raw

    def __repr__(self):
        return f"UnsupportedValue({type(self.raw).__name__})"


class Attribute:
    """A saml2:Attribute with its ordered values."""

    def __init__(self, name: str, friendly_name: Optional[str] = None,
                 name_format: Optional[str] = None,
                 values: Optional[List[AttributeValue]] = None):
        self.name = name
        self.friendly_name = friendly_name
        self.name_format = name_format
        self.values = list(values) if values else []

    def __repr__(self):
        return f"Attribute(name={self.name!r}, friendly_name={self.friendly_name!r}, values={len(self.values)})"


class AttributeStatement:
    """A saml2:AttributeStatement."""

    def __init__(self, attributes: Optional[List[Attribute]] = None):
        self.attributes = list(attributes) if attributes else []


class Assertion:
    """The attribute-bearing part of a saml2:Assertion."""

    def __init__(self, attribute_statements: Optional[List[AttributeStatement]] = None,
                 assertion_id: Optional[str] = None, issuer: Optional[str] = None):
        self.attribute_statements = list(attribute_statements) if attribute_statements else []
        self.assertion_id = assertion_id
        self.issuer = issuer


def serialize_name_id(name_id: NameID) -> Optional[str]:
    """
    Serialize a NameID to its canonical ``saml2:NameID`` fragment.

    The fragment is self-contained: it declares the assertion namespace with the
    ``saml2`` prefix and carries the qualifier and format attributes that are set.

    Args:
        name_id: NameID record to serialize

    Returns:
        XML fragment, or None if the record cannot be serialized
    """
    element = ET.Element(_qname(ASSERTION_NS, 'NameID'))
    for attr_name, attr_value in (('NameQualifier', name_id.name_qualifier),
                                  ('SPNameQualifier', name_id.sp_name_qualifier),
                                  ('Format', name_id.format),
                                  ('SPProvidedID', name_id.sp_provided_id)):
        if attr_value is not None:
            element.set(attr_name, attr_value)
    element.text = name_id.value

    try:
        return ET.tostring(element, encoding='unicode')
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to serialize NameID {name_id!r}: {e}")
        return None


def _name_id_from_element(element: ET.Element) -> NameID:
    return NameID(
        value=element.text or '',
        format=element.get('Format'),
        name_qualifier=element.get('NameQualifier'),
        sp_name_qualifier=element.get('SPNameQualifier'),
        sp_provided_id=element.get('SPProvidedID'),
    )


def parse_name_id(xml_data: Union[str, bytes]) -> NameID:
    """
    Read a ``saml2:NameID`` fragment back into a NameID record.

    Raises:
        SAMLParseError: If the fragment is not a well-formed NameID element
    """
    try:
        element = ET.fromstring(xml_data)
    except ET.ParseError as e:
        raise SAMLParseError(f"Invalid NameID XML: {e}")

    if element.tag != _qname(ASSERTION_NS, 'NameID'):
        raise SAMLParseError(f"Expected saml2:NameID, got {element.tag}")
    return _name_id_from_element(element)


def _parse_attribute_value(element: ET.Element) -> AttributeValue:
    children = list(element)
    if children:
        if len(children) == 1 and children[0].tag == _qname(ASSERTION_NS, 'NameID'):
            return StructuredIdentifier(_name_id_from_element(children[0]))
        return UnsupportedValue(element)

    if element.get(_qname(XSI_NS, 'nil'), '').lower() == 'true':
        return UnsupportedValue(element)
    return PlainString(element.text or '')


def _parse_attribute(element: ET.Element) -> Attribute:
    values = [_parse_attribute_value(value_el)
              for value_el in element.findall(_qname(ASSERTION_NS, 'AttributeValue'))]
    return Attribute(
        name=element.get('Name'),
        friendly_name=element.get('FriendlyName'),
        name_format=element.get('NameFormat'),
        values=values,
    )


def parse_assertion(xml_data: Union[str, bytes]) -> Assertion:
    """
    Read the attribute statements of a SAML assertion document.

    The document may be a bare ``saml2:Assertion`` or a ``samlp:Response``
    wrapping one; in the latter case the first assertion is used. Signatures and
    conditions are not examined.

    Args:
        xml_data: Assertion or response XML

    Returns:
        Parsed Assertion

    Raises:
        SAMLParseError: If the XML is invalid or holds no assertion
    """
    try:
        root = ET.fromstring(xml_data)
    except ET.ParseError as e:
        raise SAMLParseError(f"Invalid assertion XML: {e}")

    assertion_tag = _qname(ASSERTION_NS, 'Assertion')
    if root.tag == assertion_tag:
        assertion_el = root
    elif root.tag == _qname(PROTOCOL_NS, 'Response'):
        assertion_el = root.find(assertion_tag)
        if assertion_el is None:
            raise SAMLParseError("Response does not contain an unencrypted assertion")
    else:
        raise SAMLParseError(f"Unexpected document element: {root.tag}")

    statements = []
    for statement_el in assertion_el.findall(_qname(ASSERTION_NS, 'AttributeStatement')):
        attributes = [_parse_attribute(attr_el)
                      for attr_el in statement_el.findall(_qname(ASSERTION_NS, 'Attribute'))]
        statements.append(AttributeStatement(attributes))

    issuer_el = assertion_el.find(_qname(ASSERTION_NS, 'Issuer'))
    assertion = Assertion(
        attribute_statements=statements,
        assertion_id=assertion_el.get('ID'),
        issuer=issuer_el.text.strip() if issuer_el is not None and issuer_el.text else None,
    )
    logger.debug(f"Parsed assertion {assertion.assertion_id} with {len(statements)} attribute statements")
    return assertion
