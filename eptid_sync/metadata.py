"""
Service provider metadata model and RequestedAttribute declaration.

The mapper must make sure the SP metadata it publishes asks identity providers
for the mapped attribute. This module holds the part of the SAML metadata model
needed for that (entity descriptor, SP descriptors, attribute consuming services
and their requested attributes), an XML reader/writer for it, and the
declaration logic itself.
"""

import copy
import logging
import xml.etree.ElementTree as ET
from typing import List, Optional, Union

from eptid_sync.locator import AttributeSelector
from eptid_sync.saml import NameFormat

logger = logging.getLogger(__name__)

METADATA_NS = 'urn:oasis:names:tc:SAML:2.0:metadata'
METADATA_PREFIX = 'md'

ET.register_namespace(METADATA_PREFIX, METADATA_NS)
ET.register_namespace('ds', 'http://www.w3.org/2000/09/xmldsig#')


def _md(tag: str) -> str:
    return f'{{{METADATA_NS}}}{tag}'


class MetadataError(Exception):
    """Raised when a metadata document cannot be read."""
    pass


class RequestedAttribute:
    """An md:RequestedAttribute entry of an attribute consuming service."""

    def __init__(self, name: Optional[str] = None, friendly_name: Optional[str] = None,
                 name_format: Optional[str] = None, is_required: Optional[bool] = None):
        self.name = name
        self.friendly_name = friendly_name
        self.name_format = name_format
        self.is_required = is_required
        # Element this entry was read from; None for entries added in memory
        self.element = None

    def __repr__(self):
        return (f"RequestedAttribute(name={self.name!r}, friendly_name={self.friendly_name!r}, "
                f"name_format={self.name_format!r}, is_required={self.is_required!r})")


class AttributeConsumingService:
    """An md:AttributeConsumingService and its ordered requested attributes."""

    def __init__(self, index: int = 0, service_names: Optional[List[str]] = None,
                 requested_attributes: Optional[List[RequestedAttribute]] = None,
                 is_default: Optional[bool] = None):
        self.index = index
        self.service_names = list(service_names) if service_names else []
        self.requested_attributes = list(requested_attributes) if requested_attributes else []
        self.is_default = is_default
        self.element = None

    def add_requested_attribute(self, requested_attribute: RequestedAttribute) -> None:
        self.requested_attributes.append(requested_attribute)


class SPSSODescriptor:
    """An md:SPSSODescriptor; only its attribute consuming services are modelled."""

    def __init__(self, attribute_consuming_services: Optional[List[AttributeConsumingService]] = None,
                 protocol_support: str = 'urn:oasis:names:tc:SAML:2.0:protocol'):
        self.attribute_consuming_services = list(attribute_consuming_services) if attribute_consuming_services else []
        self.protocol_support = protocol_support
        self.element = None


class DescriptorChoice:
    """A role descriptor of an entity. Only SP descriptors are modelled."""

    def __init__(self, sp_descriptor: Optional[SPSSODescriptor] = None):
        self.sp_descriptor = sp_descriptor
        self.element = None


class EntityDescriptorChoice:
    """A group of role descriptors of an entity descriptor."""

    def __init__(self, descriptors: Optional[List[DescriptorChoice]] = None):
        self.descriptors = list(descriptors) if descriptors else []


class EntityDescriptor:
    """An md:EntityDescriptor, the root of an SP metadata document."""

    def __init__(self, entity_id: str, choices: Optional[List[EntityDescriptorChoice]] = None):
        self.entity_id = entity_id
        self.choices = list(choices) if choices else []
        self.element = None

    def attribute_consuming_services(self):
        """Yield every attribute consuming service of every SP descriptor."""
        for choice in self.choices:
            for descriptor in choice.descriptors:
                if descriptor.sp_descriptor is None:
                    continue
                for service in descriptor.sp_descriptor.attribute_consuming_services:
                    yield service


def _equals_ignore_case(expected: str, actual: Optional[str]) -> bool:
    return actual is not None and expected.lower() == actual.lower()


def is_already_requested(selector: AttributeSelector, requested_attribute: RequestedAttribute) -> bool:
    """
    Check whether an existing declaration covers the selected attribute.

    Name and friendly name are compared without regard to case. A selector field
    set to None matches any value on that side.
    """
    return ((selector.name is None or _equals_ignore_case(selector.name, requested_attribute.name)) and
            (selector.friendly_name is None or
             _equals_ignore_case(selector.friendly_name, requested_attribute.friendly_name)))


def build_requested_attribute(selector: AttributeSelector,
                              name_format: Union[NameFormat, str, None] = None) -> RequestedAttribute:
    """
    Build the declaration for the selected attribute.

    Args:
        selector: Configured attribute name and friendly name
        name_format: NameFormat or its configured name; basic format when None

    Returns:
        RequestedAttribute without a requiredness flag
    """
    if not isinstance(name_format, NameFormat):
        name_format = NameFormat.from_config(name_format)

    requested_attribute = RequestedAttribute(name=selector.name, name_format=name_format.value)
    if selector.friendly_name:
        requested_attribute.friendly_name = selector.friendly_name
    return requested_attribute


def declare_attribute(selector: AttributeSelector, document: EntityDescriptor,
                      name_format: Union[NameFormat, str, None] = None) -> int:
    """
    Request the selected attribute in every attribute consuming service.

    Services that already request the attribute are left untouched; each service
    is checked on its own. Existing declarations are never removed or reordered.

    Args:
        selector: Configured attribute name and friendly name
        document: SP metadata, updated in place
        name_format: NameFormat or its configured name

    Returns:
        Number of services the declaration was added to
    """
    requested_attribute = build_requested_attribute(selector, name_format)

    inserted = 0
    for service in document.attribute_consuming_services():
        if any(is_already_requested(selector, existing) for existing in service.requested_attributes):
            logger.debug(f"Attribute consuming service {service.index} already requests {selector!r}")
            continue
        service.add_requested_attribute(copy.copy(requested_attribute))
        inserted += 1

    if inserted:
        logger.info(f"Added {requested_attribute!r} to {inserted} attribute consuming service(s) "
                    f"of {document.entity_id}")
    else:
        logger.debug(f"No attribute consuming service of {document.entity_id} needed {selector!r}")
    return inserted


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value.strip().lower() in ('true', '1')


def _format_bool(value: bool) -> str:
    return 'true' if value else 'false'


def _parse_requested_attribute(element: ET.Element) -> RequestedAttribute:
    requested_attribute = RequestedAttribute(
        name=element.get('Name'),
        friendly_name=element.get('FriendlyName'),
        name_format=element.get('NameFormat'),
        is_required=_parse_bool(element.get('isRequired')),
    )
    requested_attribute.element = element
    return requested_attribute


def _parse_attribute_consuming_service(element: ET.Element) -> AttributeConsumingService:
    try:
        index = int(element.get('index', '0'))
    except ValueError:
        raise MetadataError(f"Invalid AttributeConsumingService index: {element.get('index')}")

    service = AttributeConsumingService(
        index=index,
        service_names=[name_el.text or '' for name_el in element.findall(_md('ServiceName'))],
        requested_attributes=[_parse_requested_attribute(req_el)
                              for req_el in element.findall(_md('RequestedAttribute'))],
        is_default=_parse_bool(element.get('isDefault')),
    )
    service.element = element
    return service


def parse_metadata(xml_data: Union[str, bytes]) -> EntityDescriptor:
    """
    Read an SP metadata document.

    Every role descriptor becomes a DescriptorChoice; only SP descriptors carry a
    model. Elements that are not modelled stay in the underlying tree and are
    written back unchanged by write_metadata.

    Raises:
        MetadataError: If the XML is invalid or not an EntityDescriptor
    """
    try:
        root = ET.fromstring(xml_data)
    except ET.ParseError as e:
        raise MetadataError(f"Invalid metadata XML: {e}")

    if root.tag != _md('EntityDescriptor'):
        raise MetadataError(f"Expected md:EntityDescriptor, got {root.tag}")

    descriptors = []
    for child in root:
        if child.tag == _md('SPSSODescriptor'):
            sp_descriptor = SPSSODescriptor(
                attribute_consuming_services=[_parse_attribute_consuming_service(acs_el)
                                              for acs_el in child.findall(_md('AttributeConsumingService'))],
                protocol_support=child.get('protocolSupportEnumeration', ''),
            )
            sp_descriptor.element = child
            descriptor = DescriptorChoice(sp_descriptor)
        elif child.tag.startswith(f'{{{METADATA_NS}}}') and child.tag.endswith('Descriptor'):
            descriptor = DescriptorChoice()
        else:
            continue
        descriptor.element = child
        descriptors.append(descriptor)

    document = EntityDescriptor(root.get('entityID'), [EntityDescriptorChoice(descriptors)])
    document.element = root
    logger.debug(f"Parsed metadata for {document.entity_id} with {len(descriptors)} role descriptor(s)")
    return document


def _requested_attribute_element(requested_attribute: RequestedAttribute) -> ET.Element:
    element = ET.Element(_md('RequestedAttribute'))
    if requested_attribute.name is not None:
        element.set('Name', requested_attribute.name)
    if requested_attribute.friendly_name is not None:
        element.set('FriendlyName', requested_attribute.friendly_name)
    if requested_attribute.name_format is not None:
        element.set('NameFormat', requested_attribute.name_format)
    if requested_attribute.is_required is not None:
        element.set('isRequired', _format_bool(requested_attribute.is_required))
    return element


def _service_element(service: AttributeConsumingService) -> ET.Element:
    element = ET.Element(_md('AttributeConsumingService'))
    element.set('index', str(service.index))
    if service.is_default is not None:
        element.set('isDefault', _format_bool(service.is_default))
    for service_name in service.service_names:
        name_el = ET.SubElement(element, _md('ServiceName'))
        name_el.set('{http://www.w3.org/XML/1998/namespace}lang', 'en')
        name_el.text = service_name
    return element


def _sync_service(service: AttributeConsumingService, parent: ET.Element) -> None:
    if service.element is None:
        service.element = _service_element(service)
        parent.append(service.element)

    for requested_attribute in service.requested_attributes:
        if requested_attribute.element is None:
            requested_attribute.element = _requested_attribute_element(requested_attribute)
            service.element.append(requested_attribute.element)


def write_metadata(document: EntityDescriptor) -> str:
    """
    Serialize a metadata document, including declarations added in memory.

    Documents read with parse_metadata keep all of their original content; new
    requested attributes are appended after the existing ones of their service.
    """
    if document.element is None:
        document.element = ET.Element(_md('EntityDescriptor'))
        if document.entity_id is not None:
            document.element.set('entityID', document.entity_id)

    for choice in document.choices:
        for descriptor in choice.descriptors:
            sp_descriptor = descriptor.sp_descriptor
            if sp_descriptor is None:
                continue
            if sp_descriptor.element is None:
                sp_descriptor.element = ET.SubElement(document.element, _md('SPSSODescriptor'))
                sp_descriptor.element.set('protocolSupportEnumeration', sp_descriptor.protocol_support)
                descriptor.element = sp_descriptor.element
            for service in sp_descriptor.attribute_consuming_services:
                _sync_service(service, sp_descriptor.element)

    return ET.tostring(document.element, encoding='unicode')
