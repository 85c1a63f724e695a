"""Command-line example for the TOS client.

Creates a bucket, lists buckets, heads the new bucket and deletes it again,
using connection settings from the environment (see tosclient.config).

Usage:
    tosclient BUCKET_NAME
    tosclient -v BUCKET_NAME      # debug logging
"""

import argparse
import sys
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from tosclient.client import Client
from tosclient.config import ConfigError, EnvConfig, load_from_env
from tosclient.credentials import StaticCredentials
from tosclient.errors import TosError
from tosclient.log import configure_logging
from tosclient.models import ListBucketsOutput


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Exactly one positional argument, the bucket name, is accepted.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="tosclient",
        description="Create, list, head and delete a bucket on TOS",
    )

    parser.add_argument(
        "bucket",
        help="Name of the bucket to create and delete",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def build_client(env: EnvConfig) -> Client:
    """Build a client from environment settings."""
    return Client(
        env.endpoint,
        region=env.region,
        credentials=StaticCredentials(env.access_key, env.secret_key),
    )


def buckets_table(output: ListBucketsOutput) -> Table:
    """Render a ListBuckets result as a table."""
    table = Table(title="Buckets", box=box.SIMPLE)
    table.add_column("Name")
    table.add_column("Location")
    table.add_column("Created")
    for bucket in output.buckets:
        created = bucket.creation_date.isoformat() if bucket.creation_date else ""
        table.add_row(bucket.name, bucket.location, created)
    return table


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for operation failures, 2 for
        configuration errors
    """
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")
    console = Console(legacy_windows=True)

    try:
        env = load_from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        client = build_client(env)
    except TosError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    with client:
        try:
            created = client.create_bucket(args.bucket)
            console.print(f"[green]bucket created:[/green] {args.bucket} {created.location}")

            listed = client.list_buckets()
            console.print(buckets_table(listed))

            head = client.head_bucket(args.bucket)
            console.print(
                f"[green]head bucket:[/green] region={head.region} "
                f"storage_class={head.storage_class}"
            )

            deleted = client.delete_bucket(args.bucket)
            console.print(
                f"[green]bucket deleted:[/green] {args.bucket} "
                f"(RequestId={deleted.request_info.request_id})"
            )
        except TosError as e:
            console.print(f"[red]{e}[/red]")
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
