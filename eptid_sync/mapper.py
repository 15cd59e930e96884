"""
eduPersonTargetedID mapper.

Ties the attribute locator, the synchronizer and the metadata declaration
together behind the three callbacks an identity broker invokes: first-login
import, update on later logins and SP metadata publication.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from eptid_sync.config import MapperConfig
from eptid_sync.locator import SAML_ASSERTION, AttributeSelector, locate_in_context, resolve_selector_name
from eptid_sync.logging_setup import audit_logger
from eptid_sync.metadata import EntityDescriptor, declare_attribute
from eptid_sync.saml import Assertion
from eptid_sync.synchronizer import SyncAction, SyncPlan, UserAttributeStore, synchronize

logger = logging.getLogger(__name__)

PROVIDER_ID = 'edu-person-targetedid-mapper'
DISPLAY_CATEGORY = 'EduPersonTargetedID Mapper'
DISPLAY_TYPE = 'EduPersonTargetedID Mapper'
HELP_TEXT = 'Import eduPersonTargetedID saml attribute if it exists in assertion into the specified user attribute.'


class BrokeredIdentityContext:
    """
    Identity data of one inbound login.

    ``context_data`` carries protocol data such as the SAML assertion;
    ``user_attributes`` collects attributes to put on a user created at first login.
    """

    def __init__(self, username: Optional[str] = None, context_data: Optional[Dict[str, Any]] = None):
        self.username = username
        self.context_data = dict(context_data) if context_data else {}
        self.user_attributes = {}

    @classmethod
    def from_assertion(cls, assertion: Assertion, username: Optional[str] = None) -> 'BrokeredIdentityContext':
        return cls(username=username, context_data={SAML_ASSERTION: assertion})

    def set_user_attribute(self, key: str, values: List[str]) -> None:
        self.user_attributes[key] = list(values)


class TargetedIDMapper:
    """
    Maps a SAML attribute into a user attribute and requests it in SP metadata.

    The mapper holds only its immutable configuration; every callback works on
    the objects handed to it.
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        """
        Args:
            config: Mapper options; a MapperConfig or any mapping of option names
        """
        self.config = config if isinstance(config, MapperConfig) else MapperConfig(config)

    @property
    def user_attribute(self) -> Optional[str]:
        return self.config.user_attribute

    def selector(self) -> AttributeSelector:
        """Selector used to find the attribute in assertions."""
        return AttributeSelector(name=resolve_selector_name(self.config))

    def find_attribute_values(self, context: BrokeredIdentityContext) -> Optional[List[str]]:
        """
        Locate the configured attribute in the context's assertion.

        Returns:
            Located values, or None when the assertion does not carry the attribute

        Raises:
            KeyError: If the context holds no SAML assertion
        """
        return locate_in_context(self.selector(), context.context_data)

    def preprocess_federated_identity(self, context: BrokeredIdentityContext) -> None:
        """Import the attribute into a user being created at first login."""
        attribute = self.user_attribute
        if not attribute:
            return

        if SAML_ASSERTION not in context.context_data:
            logger.warning(f"No SAML assertion in context for {context.username}, nothing to import")
            return

        values = self.find_attribute_values(context)
        if values:
            context.set_user_attribute(attribute, values)
            logger.debug(f"Imported {len(values)} value(s) into '{attribute}' for {context.username}")

    def update_brokered_user(self, store: UserAttributeStore, context: BrokeredIdentityContext) -> SyncPlan:
        """
        Bring the stored user attribute in line with the current assertion.

        Returns:
            The applied SyncPlan
        """
        attribute = self.user_attribute
        if not attribute:
            return SyncPlan(SyncAction.NOOP, attribute)

        if SAML_ASSERTION not in context.context_data:
            logger.warning(f"No SAML assertion in context for {context.username}, leaving '{attribute}' untouched")
            return SyncPlan(SyncAction.NOOP, attribute)

        plan = synchronize(store, attribute, self.find_attribute_values(context))
        if plan.action != SyncAction.NOOP:
            audit_logger.log_attribute_change(context.username or 'unknown', attribute, plan.action.value)
        return plan

    def update_metadata(self, document: EntityDescriptor) -> int:
        """
        Request the configured attribute in the SP metadata.

        Returns:
            Number of attribute consuming services the attribute was added to
        """
        selector = AttributeSelector(name=self.config.attribute_name,
                                     friendly_name=self.config.attribute_friendly_name)
        inserted = declare_attribute(selector, document, self.config.attribute_name_format)
        if inserted:
            audit_logger.log_metadata_update(document.entity_id, inserted)
        return inserted
