#!/usr/bin/env python3
"""
Find (and optionally catalog) stored media that has no gallery record.

An object ends up in the bucket without a record when the catalog save
fails after the upload itself succeeded. This sweep lists the bucket,
compares it with the catalog and reports the difference.

Usage:
    python scripts/reconcile_catalog.py            # report only
    python scripts/reconcile_catalog.py --repair   # also write missing records

Requires:
    - .env file with S3 and Snowflake credentials
"""

import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def main():
    import argparse

    from media_relay.api.dependencies import build_shared_resources
    from media_relay.config.settings import get_settings
    from media_relay.core.media.orchestrator import UploadOrchestrator
    from media_relay.infrastructure.snowflake.repositories.media import PooledMediaCatalog

    parser = argparse.ArgumentParser(description='Reconcile object storage with the media catalog')
    parser.add_argument('--repair', action='store_true', help='Catalog recognized media that is missing a record')
    parser.add_argument('--prefix', default='', help='Only consider keys under this prefix')
    args = parser.parse_args()

    settings = get_settings()

    missing_fields = settings.validate_required_fields()
    missing_fields = [f for f in missing_fields if f != "ADMIN_PASSWORD"]
    if missing_fields:
        print(f"ERROR: Missing configuration: {', '.join(missing_fields)}")
        sys.exit(1)

    resources = build_shared_resources(settings)

    try:
        orchestrator = UploadOrchestrator(
            storage=resources.storage,
            catalog=PooledMediaCatalog(resources.catalog_pool),
            key_generator=resources.key_generator,
        )

        missing = orchestrator.find_uncataloged(args.prefix)
        print(f"Found {len(missing)} uncataloged object(s)")
        for obj in missing:
            kind = obj.kind.value if obj.kind else "unrecognized"
            print(f"  {obj.key} ({kind})")

        if args.repair:
            repaired = orchestrator.repair_uncataloged(args.prefix)
            print(f"\nCataloged {len(repaired)} object(s)")
    except Exception as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    finally:
        resources.close()

    sys.exit(0)


if __name__ == '__main__':
    main()
