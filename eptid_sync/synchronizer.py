"""
Reconciliation of located attribute values into a user's attribute store.

This module defines the user attribute store interface that persistence
backends implement, and the logic that decides whether a user's stored values
must be removed, replaced or left alone.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class UserAttributeStoreError(Exception):
    """Base exception for user attribute store errors."""
    pass


class UserAttributeStore(ABC):
    """
    Abstract base class for user attribute stores.

    A store exposes the attributes of one user as a mapping of attribute name to
    an ordered list of string values. An absent key is different from a key
    holding an empty list. Stores that cannot keep an empty value list set
    stores_empty_values to False.
    """

    stores_empty_values = True

    @abstractmethod
    def get_attributes(self) -> Dict[str, List[str]]:
        """
        Return the user's attributes.

        Returns:
            Mapping of attribute name to values
        """
        pass

    @abstractmethod
    def set_attribute(self, key: str, values: List[str]) -> None:
        """
        Replace all values of an attribute.

        Args:
            key: Attribute name
            values: New values
        """
        pass

    @abstractmethod
    def remove_attribute(self, key: str) -> None:
        """
        Remove an attribute entirely.

        Args:
            key: Attribute name
        """
        pass

    def close(self) -> None:
        """Release resources held by the store."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class InMemoryUserAttributeStore(UserAttributeStore):
    """User attribute store backed by a dictionary."""

    def __init__(self, attributes: Optional[Dict[str, List[str]]] = None):
        self.attributes = {key: list(values) for key, values in (attributes or {}).items()}

    def get_attributes(self) -> Dict[str, List[str]]:
        return {key: list(values) for key, values in self.attributes.items()}

    def set_attribute(self, key: str, values: List[str]) -> None:
        self.attributes[key] = list(values)

    def remove_attribute(self, key: str) -> None:
        self.attributes.pop(key, None)


class SyncAction(Enum):
    NOOP = 'noop'
    SET = 'set'
    REMOVE = 'remove'


class SyncPlan:
    """The single change to apply to one user attribute."""

    def __init__(self, action: SyncAction, key: Optional[str], values: Optional[List[str]] = None):
        self.action = action
        self.key = key
        self.values = values

    def __eq__(self, other):
        if not isinstance(other, SyncPlan):
            return False
        return self.action == other.action and self.key == other.key and self.values == other.values

    def __repr__(self):
        return f"SyncPlan(action={self.action.value}, key={self.key!r}, values={self.values!r})"


def plan_synchronization(target_key: str, located: Optional[Sequence[str]],
                         current: Optional[Sequence[str]]) -> SyncPlan:
    """
    Decide how to bring the stored values in line with the located ones.

    Rules, first match wins:
      - nothing located (None): remove the attribute
      - attribute not stored yet: set it
      - stored values differ (order and duplicates count): replace them
      - otherwise: nothing to do

    Args:
        target_key: User attribute name
        located: Values found in the assertion, or None when the attribute is gone
        current: Values currently stored, or None when the attribute is absent

    Returns:
        SyncPlan describing the change
    """
    if located is None:
        return SyncPlan(SyncAction.REMOVE, target_key)

    located = list(located)
    if current is None:
        return SyncPlan(SyncAction.SET, target_key, located)
    if located != list(current):
        return SyncPlan(SyncAction.SET, target_key, located)
    return SyncPlan(SyncAction.NOOP, target_key)


def apply_plan(store: UserAttributeStore, plan: SyncPlan) -> None:
    """Apply a plan to the store with a single write, or none."""
    if plan.action == SyncAction.REMOVE:
        store.remove_attribute(plan.key)
        logger.info(f"Removed user attribute '{plan.key}'")
    elif plan.action == SyncAction.SET:
        store.set_attribute(plan.key, plan.values)
        logger.info(f"Set user attribute '{plan.key}' ({len(plan.values)} value(s))")
    else:
        logger.debug(f"User attribute '{plan.key}' already up to date")


def synchronize(store: UserAttributeStore, target_key: Optional[str],
                located: Optional[Sequence[str]]) -> SyncPlan:
    """
    Reconcile located values into the user's store.

    An empty or unset target key disables synchronization; the store is not
    touched in that case. For stores that cannot keep an empty value list, an
    absent attribute equals an empty one.

    Args:
        store: User attribute store to update
        target_key: User attribute name to write
        located: Values found in the assertion, or None when the attribute is gone

    Returns:
        The applied SyncPlan
    """
    if not target_key:
        logger.debug("No user attribute configured, skipping synchronization")
        return SyncPlan(SyncAction.NOOP, target_key)

    current = store.get_attributes().get(target_key)
    if current is None and not store.stores_empty_values:
        # an absent attribute is how such a store holds an empty list
        current = []
    plan = plan_synchronization(target_key, located, current)
    apply_plan(store, plan)
    return plan
