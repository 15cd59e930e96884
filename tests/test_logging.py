#!/usr/bin/env python3
"""
Unit tests for logging setup, sensitive data filtering and audit logging.
"""

import os
import sys
import shutil
import logging
import logging.handlers
import tempfile
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eptid_sync.logging_setup import LOG_FILE_NAME, AuditLogger, LoggingManager, SensitiveDataFilter


def filtered(message):
    record = logging.LogRecord('test', logging.INFO, __file__, 1, message, None, None)
    SensitiveDataFilter().filter(record)
    return record.msg


class TestSensitiveDataFilter(unittest.TestCase):
    """Test cases for scrubbing log messages."""

    def test_key_value_passwords(self):
        self.assertEqual(filtered('password=secret123'), 'password=****')
        self.assertEqual(filtered('token=abc123def456'), 'token=****')

    def test_json_passwords(self):
        self.assertEqual(filtered('{"bind_password": "topsecret"}'), '{"bind_password": "****"}')
        self.assertEqual(filtered('{"password": "test123"}'), '{"password": "****"}')

    def test_name_id_value_is_hidden(self):
        message = ('Set <saml2:NameID xmlns:saml2="urn:oasis:names:tc:SAML:2.0:assertion" '
                   'Format="urn:oasis:names:tc:SAML:2.0:nameid-format:persistent">YjdlM2Q4NzQ0ZmY0</saml2:NameID>')

        result = filtered(message)

        self.assertNotIn('YjdlM2Q4NzQ0ZmY0', result)
        self.assertIn('>****</saml2:NameID>', result)
        self.assertIn('nameid-format:persistent', result)

    def test_normal_message_unchanged(self):
        self.assertEqual(filtered('Normal message without secrets'), 'Normal message without secrets')

    def test_record_is_always_kept(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'pwd=x', None, None)
        self.assertTrue(SensitiveDataFilter().filter(record))


class TestLoggingManager(unittest.TestCase):
    """Test cases for handler setup."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root_logger = logging.getLogger()
        self.saved_handlers = self.root_logger.handlers[:]
        self.saved_level = self.root_logger.level

    def tearDown(self):
        for handler in self.root_logger.handlers[:]:
            if handler not in self.saved_handlers:
                self.root_logger.removeHandler(handler)
                handler.close()
        for handler in self.saved_handlers:
            if handler not in self.root_logger.handlers:
                self.root_logger.addHandler(handler)
        self.root_logger.setLevel(self.saved_level)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_file_logging(self):
        log_dir = os.path.join(self.temp_dir, 'logs')
        manager = LoggingManager()

        manager.setup_logging({'level': 'DEBUG', 'log_dir': log_dir, 'console_output': False})
        logging.getLogger('eptid_sync.test').info('password=hunter2')
        for handler in self.root_logger.handlers:
            handler.flush()

        log_file = os.path.join(log_dir, LOG_FILE_NAME)
        self.assertTrue(os.path.exists(log_file))
        self.assertEqual(manager.log_file, log_file)
        with open(log_file, encoding='utf-8') as f:
            content = f.read()
        self.assertIn('password=****', content)
        self.assertNotIn('hunter2', content)
        self.assertEqual(self.root_logger.level, logging.DEBUG)

    def test_handlers(self):
        manager = LoggingManager()

        manager.setup_logging({'log_dir': self.temp_dir, 'rotation': 'none', 'console_output': True})

        handler_types = [type(handler) for handler in self.root_logger.handlers]
        self.assertIn(logging.FileHandler, handler_types)
        self.assertIn(logging.StreamHandler, handler_types)
        self.assertTrue(all(any(isinstance(f, SensitiveDataFilter) for f in handler.filters)
                            for handler in self.root_logger.handlers))

    def test_daily_rotation_handler(self):
        manager = LoggingManager()

        manager.setup_logging({'log_dir': self.temp_dir, 'rotation': 'daily', 'retention_days': 3,
                               'console_output': False})

        handler = self.root_logger.handlers[0]
        self.assertIsInstance(handler, logging.handlers.TimedRotatingFileHandler)
        self.assertEqual(handler.backupCount, 3)

    def test_setup_runs_once(self):
        manager = LoggingManager()
        manager.setup_logging({'log_dir': self.temp_dir, 'console_output': False})
        handlers = self.root_logger.handlers[:]

        manager.setup_logging({'log_dir': self.temp_dir, 'console_output': True})
        self.assertEqual(self.root_logger.handlers, handlers)
        self.assertTrue(manager.configured)

    def test_level_names_ignore_case(self):
        LoggingManager().setup_logging({'level': 'warning', 'log_dir': self.temp_dir,
                                        'console_output': True, 'console_level': 'error'})

        self.assertEqual(self.root_logger.level, logging.WARNING)
        levels = sorted(handler.level for handler in self.root_logger.handlers)
        self.assertEqual(levels, [logging.WARNING, logging.ERROR])

    def test_old_logs_removed(self):
        old_log = os.path.join(self.temp_dir, f'{LOG_FILE_NAME}.2020-01-01')
        with open(old_log, 'w') as f:
            f.write('old\n')
        os.utime(old_log, (0, 0))

        LoggingManager().setup_logging({'log_dir': self.temp_dir, 'retention_days': 7, 'console_output': False})

        self.assertFalse(os.path.exists(old_log))


class TestAuditLogger(unittest.TestCase):
    """Test cases for audit log entries."""

    def test_attribute_change(self):
        with self.assertLogs('audit', level='INFO') as captured:
            AuditLogger().log_attribute_change('jdoe', 'eduPersonTargetedID', 'set')

        self.assertIn('User attribute SET: user=jdoe attribute=eduPersonTargetedID', captured.output[0])

    def test_metadata_update(self):
        with self.assertLogs('audit', level='INFO') as captured:
            AuditLogger().log_metadata_update('https://sp.example.org/shibboleth', 2)

        self.assertIn('entity=https://sp.example.org/shibboleth requested_attributes_added=2', captured.output[0])


if __name__ == '__main__':
    unittest.main()
