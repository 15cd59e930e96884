"""
eptid-sync - Map a SAML attribute (eduPersonTargetedID by default) into local user attributes.

This package locates an attribute in a SAML assertion, reconciles its values into a
user's stored attributes and declares the attribute as requested in the service
provider metadata published to identity providers.
"""

__version__ = "1.0.0"
__author__ = "eptid-sync Team"
