"""Create the SupportFlow DynamoDB tables and seed teams and users.

Usage:
    python scripts/seed_dynamodb.py --endpoint-url http://localhost:4566
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

import boto3

from supportflow.models.directory import Team, User
from supportflow.persistence.dynamodb_backend import (
    DIRECTORY_TABLE,
    RECORDS_TABLE,
    DynamoDBDirectory,
)

TABLE_DEFINITIONS: list[dict[str, Any]] = [
    {"name": RECORDS_TABLE},
    {"name": DIRECTORY_TABLE},
]

SEED_PATH = Path(__file__).resolve().parent.parent / "config" / "directory_seed.json"


def create_tables(ddb: Any, suffix: str = "") -> None:
    """Create both tables. Skips a table that already exists."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])

    for defn in TABLE_DEFINITIONS:
        table_name = f"{defn['name']}{suffix}"
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        print(f"  Created table {table_name}")


def seed_directory(
    suffix: str = "",
    region: str = "us-east-1",
    endpoint_url: str | None = None,
    seed_path: Path = SEED_PATH,
) -> tuple[int, int]:
    """Load directory_seed.json into the directory table. Returns (teams, users)."""
    data = json.loads(seed_path.read_text())
    directory = DynamoDBDirectory(table_suffix=suffix, region=region, endpoint_url=endpoint_url)

    teams = [Team.model_validate(t) for t in data["teams"]]
    for team in teams:
        directory.save_team(team)
    print(f"  Seeded {len(teams)} teams")

    users = [User.model_validate(u) for u in data["users"]]
    for user in users:
        directory.save_user(user)
    print(f"  Seeded {len(users)} users")
    return len(teams), len(users)


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed DynamoDB tables for SupportFlow")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, suffix=args.table_suffix)

    print("Seeding directory...")
    seed_directory(suffix=args.table_suffix, region=args.region, endpoint_url=args.endpoint_url)

    print("Done!")


if __name__ == "__main__":
    main()
