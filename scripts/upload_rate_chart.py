#!/usr/bin/env python3
"""
Upload a rate chart CSV (CLR,FAT,SNF,RATE) for a society channel

Usage:
    python scripts/upload_rate_chart.py --db-key RAV1234 --society S-101 --channel COW --file cow.csv
    python scripts/upload_rate_chart.py --db-key RAV1234 --society S-101 --share-with S-102 \\
        --channel BUF --file buf.csv --replace
"""
import argparse
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from dairylink import create_app
from dairylink.errors import DeviceProtocolError, RateChartConflict
from dairylink.models.rate_chart import CHANNELS, RateChart, parse_rate_chart_csv
from dairylink.models.tenant import Tenant, tenant_scope
from dairylink.utils.entity_resolver import resolve_society
from dairylink.utils.field_normalizer import parse_society_id


def print_success(text):
    print(f"✓ {text}")


def print_warning(text):
    print(f"⚠ {text}")


def print_error(text):
    print(f"✗ {text}")


def main():
    parser = argparse.ArgumentParser(description='Upload a rate chart into a tenant schema')
    parser.add_argument('--db-key', required=True, help='Tenant DB key')
    parser.add_argument('--society', required=True, help='Society ID (e.g. S-101)')
    parser.add_argument('--share-with', action='append', default=[],
                        help='Further society IDs that use the same chart (repeatable)')
    parser.add_argument('--channel', required=True, type=str.upper, choices=CHANNELS)
    parser.add_argument('--file', required=True, help='CSV file with CLR,FAT,SNF,RATE columns')
    parser.add_argument('--uploaded-by', default='cli', help='Name recorded as uploader')
    parser.add_argument('--replace', action='store_true', help='Replace an active chart on the channel')
    args = parser.parse_args()

    try:
        with open(args.file, encoding='utf-8-sig') as f:
            rows = parse_rate_chart_csv(f.read())
    except (OSError, ValueError) as e:
        print_error(str(e))
        sys.exit(1)
    print_success(f"Parsed {len(rows)} price rows from {args.file}")

    app = create_app()
    with app.app_context():
        try:
            tenant = Tenant.resolve(args.db_key)
            with tenant_scope(tenant) as ctx:
                society = resolve_society(ctx, parse_society_id(args.society))
                shared = [resolve_society(ctx, parse_society_id(sid))['id'] for sid in args.share_with]
                chart_id = RateChart.assign(
                    ctx,
                    society['id'],
                    args.channel,
                    rows,
                    file_name=os.path.basename(args.file),
                    uploaded_by=args.uploaded_by,
                    replace=args.replace,
                    share_with=shared
                )
                chart = RateChart.find_by_id(ctx, chart_id)
        except RateChartConflict as e:
            print_warning(str(e))
            print("Re-run with --replace to overwrite it.")
            sys.exit(2)
        except DeviceProtocolError as e:
            print_error(e.message)
            sys.exit(1)

    print_success(f"Rate chart {chart_id} assigned to {args.society} ({args.channel})")
    print(f"  Records: {chart['record_count']}")
    print(f"  Uploaded at: {chart['uploaded_at']}")
    if shared:
        print(f"  Shared with: {', '.join(args.share_with)}")


if __name__ == '__main__':
    main()
