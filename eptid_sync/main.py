"""
Command line entry point for eptid-sync.

Loads configuration, sets up logging and runs one mapper operation against
files on disk: locate the attribute in an assertion, declare it in SP metadata,
or synchronize it into an LDAP user entry.
"""

import sys
import json
import logging
import argparse
from datetime import datetime
from typing import Dict, Any, Optional

from eptid_sync.config import load_config, mapper_config_from, ConfigurationError
from eptid_sync.ldap_store import LDAPConnectionError, LDAPConnector, LDAPStoreError, LDAPUserAttributeStore
from eptid_sync.logging_setup import setup_logging
from eptid_sync.mapper import BrokeredIdentityContext, TargetedIDMapper
from eptid_sync.metadata import MetadataError, parse_metadata, write_metadata
from eptid_sync.saml import NameFormat, SAMLParseError, parse_assertion

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_LDAP_CONNECTION_ERROR = 3


class MapperApplication:
    """Runs mapper operations from the command line."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path: Path to configuration file
        """
        self.config_path = config_path
        self.config = None
        self.mapper = None

    def load(self) -> None:
        """Load configuration, configure logging and build the mapper."""
        self.config = load_config(self.config_path)
        setup_logging(self.config.get('logging', {}))
        self.mapper = TargetedIDMapper(mapper_config_from(self.config))

    def locate(self, assertion_path: str) -> Dict[str, Any]:
        """Locate the configured attribute in an assertion file."""
        assertion = parse_assertion(_read_file(assertion_path))
        context = BrokeredIdentityContext.from_assertion(assertion)
        values = self.mapper.find_attribute_values(context)
        return {
            'assertion_id': assertion.assertion_id,
            'selector': self.mapper.selector().name,
            'present': values is not None,
            'values': values or [],
        }

    def declare(self, metadata_path: str, output_path: Optional[str] = None) -> int:
        """Declare the attribute in a metadata file; writes to output_path or stdout."""
        document = parse_metadata(_read_file(metadata_path))
        inserted = self.mapper.update_metadata(document)
        xml = write_metadata(document)

        if output_path:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(xml)
            logger.info(f"Wrote metadata to {output_path}")
        else:
            print(xml)
        return inserted

    def sync(self, assertion_path: str, user_dn: Optional[str] = None, uid: Optional[str] = None) -> Dict[str, Any]:
        """Synchronize the attribute from an assertion file into an LDAP user entry."""
        ldap_config = self.config.get('ldap')
        if not ldap_config:
            raise ConfigurationError("The sync command needs an ldap section in the configuration")
        ldap_config = dict(ldap_config, error_handling=self.config.get('error_handling', {}))

        assertion = parse_assertion(_read_file(assertion_path))

        if uid:
            store = LDAPUserAttributeStore.for_uid(ldap_config, uid)
        else:
            store = LDAPUserAttributeStore(ldap_config, user_dn)

        with store:
            context = BrokeredIdentityContext.from_assertion(assertion, username=uid or user_dn)
            plan = self.mapper.update_brokered_user(store, context)

        return {
            'user': store.user_dn,
            'attribute': plan.key,
            'action': plan.action.value,
            'values': plan.values,
        }

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration and, when configured, LDAP connectivity.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self.config = load_config(self.config_path)
            mapper_config = mapper_config_from(self.config)
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully',
                'mapper': {
                    'selector': TargetedIDMapper(mapper_config).selector().name,
                    'user_attribute': mapper_config.user_attribute,
                    'name_format': NameFormat.from_config(mapper_config.attribute_name_format).value,
                }
            }
        except ConfigurationError as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        ldap_config = self.config.get('ldap')
        if ldap_config:
            try:
                connection = LDAPConnector(ldap_config).connect(max_retries=1, retry_wait=0)
                connection.unbind()
                health_status['checks']['ldap'] = {
                    'status': 'pass',
                    'message': 'LDAP connection successful'
                }
            except LDAPConnectionError as e:
                health_status['checks']['ldap'] = {
                    'status': 'fail',
                    'message': f'LDAP connection failed: {e}'
                }
                health_status['status'] = 'unhealthy'
        else:
            health_status['checks']['ldap'] = {
                'status': 'skip',
                'message': 'No LDAP user store configured'
            }

        return health_status


def _read_file(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='eptid-sync',
                                     description='Map a SAML attribute into user attributes and SP metadata')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of running a command')

    subparsers = parser.add_subparsers(dest='command')

    locate_parser = subparsers.add_parser('locate', help='Print the attribute values found in an assertion')
    locate_parser.add_argument('assertion', help='SAML assertion or response XML file')

    metadata_parser = subparsers.add_parser('metadata', help='Request the attribute in SP metadata')
    metadata_parser.add_argument('metadata', help='SP metadata XML file')
    metadata_parser.add_argument('--output', '-o', help='Write updated metadata here instead of stdout')

    sync_parser = subparsers.add_parser('sync', help='Synchronize the attribute into an LDAP user entry')
    sync_parser.add_argument('assertion', help='SAML assertion or response XML file')
    user_group = sync_parser.add_mutually_exclusive_group(required=True)
    user_group.add_argument('--user-dn', help='Distinguished name of the user entry')
    user_group.add_argument('--uid', help='Find the user entry by uid')

    return parser


def main(argv=None):
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    app = MapperApplication(config_path=args.config)

    if args.health_check:
        health_status = app.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(EXIT_OK if health_status['status'] == 'healthy' else EXIT_FAILURE)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_FAILURE)

    try:
        app.load()
        if args.command == 'locate':
            print(json.dumps(app.locate(args.assertion), indent=2))
        elif args.command == 'metadata':
            inserted = app.declare(args.metadata, args.output)
            logger.info(f"Requested attribute added to {inserted} attribute consuming service(s)")
        elif args.command == 'sync':
            print(json.dumps(app.sync(args.assertion, user_dn=args.user_dn, uid=args.uid), indent=2))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIGURATION_ERROR)
    except LDAPConnectionError as e:
        logger.error(f"LDAP connection error: {e}")
        print(f"LDAP connection error: {e}", file=sys.stderr)
        sys.exit(EXIT_LDAP_CONNECTION_ERROR)
    except (SAMLParseError, MetadataError, LDAPStoreError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
