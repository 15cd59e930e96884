#!/usr/bin/env python3
"""
Unit tests for reconciling located values into user attribute stores.
"""

import os
import sys
import unittest
from unittest.mock import Mock

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eptid_sync.synchronizer import (
    InMemoryUserAttributeStore,
    SyncAction,
    SyncPlan,
    UserAttributeStore,
    plan_synchronization,
    synchronize,
)

KEY = 'eduPersonTargetedID'


def mock_store(attributes):
    """Create a store mock that reports the given attributes."""
    store = Mock(spec=UserAttributeStore)
    store.get_attributes.return_value = attributes
    return store


class TestPlanSynchronization(unittest.TestCase):
    """Test cases for the decision table."""

    def test_none_located_removes(self):
        self.assertEqual(plan_synchronization(KEY, None, ['old']), SyncPlan(SyncAction.REMOVE, KEY))
        self.assertEqual(plan_synchronization(KEY, None, None), SyncPlan(SyncAction.REMOVE, KEY))

    def test_absent_current_sets(self):
        self.assertEqual(plan_synchronization(KEY, ['x', 'y'], None), SyncPlan(SyncAction.SET, KEY, ['x', 'y']))
        self.assertEqual(plan_synchronization(KEY, [], None), SyncPlan(SyncAction.SET, KEY, []))

    def test_different_values_replace(self):
        self.assertEqual(plan_synchronization(KEY, ['new'], ['old']), SyncPlan(SyncAction.SET, KEY, ['new']))
        self.assertEqual(plan_synchronization(KEY, [], ['old']), SyncPlan(SyncAction.SET, KEY, []))

    def test_order_matters(self):
        self.assertEqual(plan_synchronization(KEY, ['b', 'a'], ['a', 'b']).action, SyncAction.SET)

    def test_duplicates_matter(self):
        self.assertEqual(plan_synchronization(KEY, ['a', 'a'], ['a']).action, SyncAction.SET)

    def test_equal_values_noop(self):
        self.assertEqual(plan_synchronization(KEY, ['old'], ['old']), SyncPlan(SyncAction.NOOP, KEY))
        self.assertEqual(plan_synchronization(KEY, [], []).action, SyncAction.NOOP)
        self.assertEqual(plan_synchronization(KEY, ('a', 'b'), ['a', 'b']).action, SyncAction.NOOP)


class TestSynchronize(unittest.TestCase):
    """Test cases for applying plans to a store."""

    def test_equal_values_perform_no_write(self):
        store = mock_store({KEY: ['old']})

        plan = synchronize(store, KEY, ['old'])

        self.assertEqual(plan.action, SyncAction.NOOP)
        store.set_attribute.assert_not_called()
        store.remove_attribute.assert_not_called()

    def test_new_attribute_is_set(self):
        store = mock_store({'mail': ['jdoe@example.org']})

        synchronize(store, KEY, ['x', 'y'])

        store.set_attribute.assert_called_once_with(KEY, ['x', 'y'])
        store.remove_attribute.assert_not_called()

    def test_none_removes_existing_value(self):
        store = mock_store({KEY: ['old']})

        synchronize(store, KEY, None)

        store.remove_attribute.assert_called_once_with(KEY)
        store.set_attribute.assert_not_called()

    def test_changed_value_is_replaced(self):
        store = mock_store({KEY: ['old']})

        synchronize(store, KEY, ['new'])

        store.set_attribute.assert_called_once_with(KEY, ['new'])

    def test_disabled_without_target_key(self):
        for target_key in (None, ''):
            store = mock_store({KEY: ['old']})

            plan = synchronize(store, target_key, ['new'])

            self.assertEqual(plan.action, SyncAction.NOOP)
            store.get_attributes.assert_not_called()
            store.set_attribute.assert_not_called()
            store.remove_attribute.assert_not_called()

    def test_second_call_is_noop(self):
        store = InMemoryUserAttributeStore({'mail': ['jdoe@example.org']})

        first = synchronize(store, KEY, ['abc', 'def'])
        second = synchronize(store, KEY, ['abc', 'def'])

        self.assertEqual(first.action, SyncAction.SET)
        self.assertEqual(second.action, SyncAction.NOOP)
        self.assertEqual(store.get_attributes(), {'mail': ['jdoe@example.org'], KEY: ['abc', 'def']})

    def test_empty_list_sets_absent_attribute(self):
        store = InMemoryUserAttributeStore()

        self.assertEqual(synchronize(store, KEY, []).action, SyncAction.SET)
        self.assertEqual(synchronize(store, KEY, []).action, SyncAction.NOOP)
        self.assertEqual(store.get_attributes(), {KEY: []})

    def test_store_without_empty_values_treats_absent_as_empty(self):
        store = mock_store({})
        store.stores_empty_values = False

        plan = synchronize(store, KEY, [])

        self.assertEqual(plan.action, SyncAction.NOOP)
        store.set_attribute.assert_not_called()

        self.assertEqual(synchronize(store, KEY, ['abc']).action, SyncAction.SET)
        self.assertEqual(synchronize(store, KEY, None).action, SyncAction.REMOVE)


class TestInMemoryUserAttributeStore(unittest.TestCase):
    """Test cases for the dictionary backed store."""

    def test_absent_and_empty_are_distinct(self):
        store = InMemoryUserAttributeStore()
        store.set_attribute(KEY, [])

        self.assertIn(KEY, store.get_attributes())
        self.assertEqual(store.get_attributes()[KEY], [])

        store.remove_attribute(KEY)
        self.assertNotIn(KEY, store.get_attributes())

    def test_remove_missing_attribute(self):
        store = InMemoryUserAttributeStore()
        store.remove_attribute(KEY)
        self.assertEqual(store.get_attributes(), {})

    def test_returned_values_are_copies(self):
        store = InMemoryUserAttributeStore({KEY: ['a']})
        store.get_attributes()[KEY].append('b')

        self.assertEqual(store.get_attributes(), {KEY: ['a']})

    def test_context_manager(self):
        with InMemoryUserAttributeStore() as store:
            store.set_attribute(KEY, ['a'])
        self.assertEqual(store.get_attributes(), {KEY: ['a']})


if __name__ == '__main__':
    unittest.main()
