#!/usr/bin/env python3
"""
Provision a tenant (organization admin) and its schema

Creates the tenant row in the master database, generates its DB key (unless
one is given), creates the tenant schema with all device tables, and
optionally seeds societies.

Usage:
    python scripts/provision_tenant.py --name "Ravi Kumar" --email ravi@example.com
    python scripts/provision_tenant.py --name "Ravi Kumar" --society "S-101:Anand Milk Society"

Make sure to set up your environment variables (DATABASE_URL) before running.
"""
import argparse
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from dairylink import create_app
from dairylink.models.society import Society
from dairylink.models.tenant import Tenant, tenant_scope


def print_success(text):
    print(f"✓ {text}")


def print_error(text):
    print(f"✗ {text}")


def parse_society(value):
    """Parse 'SOCIETY_ID:Name' into a tuple"""
    society_id, _, name = value.partition(':')
    if not society_id or not name:
        raise argparse.ArgumentTypeError(f"Expected SOCIETY_ID:Name, got '{value}'")
    return society_id.strip(), name.strip()


def main():
    parser = argparse.ArgumentParser(description='Provision a DairyLink tenant schema')
    parser.add_argument('--name', required=True, help='Organization admin display name')
    parser.add_argument('--email', help='Admin contact email')
    parser.add_argument('--db-key', help='Use this DB key instead of generating one')
    parser.add_argument('--society', action='append', type=parse_society, default=[],
                        help='Seed a society as SOCIETY_ID:Name (repeatable)')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.db_key and Tenant.find_by_db_key(args.db_key):
            print_error(f"DB key {args.db_key.upper()} is already in use")
            sys.exit(1)

        try:
            tenant = Tenant.create_tenant(args.name, email=args.email, db_key=args.db_key)
        except Exception as e:
            print_error(f"Failed to provision tenant: {e}")
            sys.exit(1)

        print_success(f"Tenant created: {tenant.full_name}")
        print(f"  DB key: {tenant.db_key}")
        print(f"  Schema: {tenant.schema_name}")

        if args.society:
            with tenant_scope(tenant.to_info()) as ctx:
                for society_id, name in args.society:
                    row_id = Society.create(ctx, society_id, name)
                    print_success(f"Society {society_id} ({name}) created with ID {row_id}")

        print()
        print("Device endpoint base URL:")
        print(f"  /api/{tenant.db_key}/...")


if __name__ == '__main__':
    main()
