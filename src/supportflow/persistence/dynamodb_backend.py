"""DynamoDB backends implementing IRecordStore and IDirectory.

Records live in ``supportflow-records{suffix}`` (PK=RECORD#{id}, SK=RECORD);
teams and users share ``supportflow-directory{suffix}`` (PK=TEAM#{id} /
USER#{id}). Patches are per-field ``SET`` expressions so concurrent
workers never overwrite each other's fields; history is appended with
``list_append``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import BaseModel

from supportflow.core.exceptions import ConcurrentUpdate, RecordNotFound, StoreError
from supportflow.models.directory import Team, User
from supportflow.models.record import OPEN_STATUSES, HistoryEntry, Record, RecordStatus

RECORDS_TABLE = "supportflow-records"
DIRECTORY_TABLE = "supportflow-directory"

_KEY_FIELDS = ("PK", "SK")


def _encode(value: Any) -> Any:
    """Convert model values to DynamoDB-friendly types (Decimal, str, dict, list)."""
    if isinstance(value, BaseModel):
        return _encode(value.model_dump(mode="json"))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode_decimals(item: Any) -> Any:
    """Convert Decimal values in a DynamoDB item to int/float."""
    if isinstance(item, Decimal):
        return int(item) if item == int(item) else float(item)
    if isinstance(item, dict):
        return {k: _decode_decimals(v) for k, v in item.items()}
    if isinstance(item, list):
        return [_decode_decimals(v) for v in item]
    return item


def _strip_keys(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in _decode_decimals(item).items() if k not in _KEY_FIELDS}


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class _DynamoTable:
    def __init__(self, base: str, table_suffix: str, region: str, endpoint_url: str | None) -> None:
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)
        self._table = self._ddb.Table(f"{base}{table_suffix}")

    def _scan(self, **kwargs: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while True:
            resp = self._table.scan(**kwargs)
            items.extend(resp.get("Items", []))
            if "LastEvaluatedKey" not in resp:
                return items
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]


class DynamoDBRecordStore(_DynamoTable):
    """Production IRecordStore backed by DynamoDB."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        super().__init__(RECORDS_TABLE, table_suffix, region, endpoint_url)

    @staticmethod
    def _key(record_id: str) -> dict[str, str]:
        return {"PK": f"RECORD#{record_id}", "SK": "RECORD"}

    @staticmethod
    def _to_record(item: dict[str, Any]) -> Record:
        data = _strip_keys(item)
        data["completed_stages"] = set(data.get("completed_stages") or ())
        return Record.model_validate(data)

    def create(self, record: Record) -> None:
        item = _encode(record.model_dump(mode="json", exclude={"completed_stages"}))
        if record.completed_stages:
            item["completed_stages"] = set(record.completed_stages)  # string set
        item.update(self._key(record.id))
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            raise StoreError(f"DynamoDB PutItem failed for record={record.id!r}: {exc}") from exc

    def get(self, record_id: str) -> Record | None:
        try:
            resp = self._table.get_item(Key=self._key(record_id))
        except ClientError as exc:
            raise StoreError(f"DynamoDB GetItem failed for record={record_id!r}: {exc}") from exc
        item = resp.get("Item")
        return self._to_record(item) if item else None

    def _update(
        self,
        record_id: str,
        fields: dict[str, Any],
        history: Sequence[HistoryEntry],
        condition: str = "attribute_exists(PK)",
        condition_values: dict[str, Any] | None = None,
        condition_names: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        names: dict[str, str] = {"#ver": "version", **(condition_names or {})}
        values: dict[str, Any] = {":zero": 0, ":one": 1, **(condition_values or {})}
        clauses = ["#ver = if_not_exists(#ver, :zero) + :one"]
        for i, (field, value) in enumerate(fields.items()):
            names[f"#f{i}"] = field
            values[f":v{i}"] = _encode(value)
            clauses.append(f"#f{i} = :v{i}")
        if history:
            names["#hist"] = "history"
            values[":hist"] = _encode(list(history))
            values[":empty"] = []
            clauses.append("#hist = list_append(if_not_exists(#hist, :empty), :hist)")

        resp = self._table.update_item(
            Key=self._key(record_id),
            UpdateExpression="SET " + ", ".join(clauses),
            ConditionExpression=condition,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return resp["Attributes"]

    def patch(
        self,
        record_id: str,
        fields: dict[str, Any],
        history: Sequence[HistoryEntry] = (),
        expected_version: int | None = None,
    ) -> Record:
        condition = "attribute_exists(PK)"
        condition_values: dict[str, Any] = {}
        if expected_version is not None:
            condition += " AND #ver = :expected"
            condition_values[":expected"] = expected_version
        try:
            return self._to_record(
                self._update(record_id, fields, history, condition=condition, condition_values=condition_values)
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                if expected_version is not None and self.get(record_id) is not None:
                    raise ConcurrentUpdate(record_id, expected_version) from exc
                raise RecordNotFound(record_id) from exc
            raise StoreError(f"DynamoDB UpdateItem failed for record={record_id!r}: {exc}") from exc

    def add_completed_stage(self, record_id: str, stage: str) -> tuple[bool, set[str]]:
        try:
            resp = self._table.update_item(
                Key=self._key(record_id),
                UpdateExpression="ADD completed_stages :stage",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeValues={":stage": {stage}},
                ReturnValues="UPDATED_OLD",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise RecordNotFound(record_id) from exc
            raise StoreError(f"DynamoDB ADD failed for record={record_id!r}: {exc}") from exc
        previous = set(resp.get("Attributes", {}).get("completed_stages", set()))
        return stage not in previous, previous | {stage}

    def flag_escalated(
        self, record_id: str, escalated_at: datetime, reason: str, entry: HistoryEntry
    ) -> bool:
        fields = {
            "is_escalated": True,
            "escalated_at": escalated_at,
            "escalation_reason": reason,
            "status": RecordStatus.ESCALATED,
        }
        open_values = {f":open{i}": str(s) for i, s in enumerate(OPEN_STATUSES)}
        condition = (
            "attribute_exists(PK) AND #esc = :false AND #st IN ("
            + ", ".join(open_values)
            + ")"
        )
        try:
            self._update(
                record_id,
                fields,
                [entry],
                condition=condition,
                condition_values={":false": False, **open_values},
                condition_names={"#esc": "is_escalated", "#st": "status"},
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise StoreError(f"DynamoDB escalation flag failed for record={record_id!r}: {exc}") from exc
        return True

    def _filter(
        self,
        statuses: Iterable[str] | None = None,
        is_escalated: bool | None = None,
        assigned_team: str | None = None,
        assigned_to: str | None = None,
    ):
        expr = Attr("PK").begins_with("RECORD#")
        if statuses is not None:
            expr = expr & Attr("status").is_in([str(s) for s in statuses])
        if is_escalated is not None:
            expr = expr & Attr("is_escalated").eq(is_escalated)
        if assigned_team is not None:
            expr = expr & Attr("assigned_team").eq(assigned_team)
        if assigned_to is not None:
            expr = expr & Attr("assigned_to").eq(assigned_to)
        return expr

    def find(
        self, statuses: Iterable[str] | None = None, is_escalated: bool | None = None
    ) -> list[Record]:
        try:
            items = self._scan(FilterExpression=self._filter(statuses, is_escalated))
        except ClientError as exc:
            raise StoreError(f"DynamoDB Scan failed: {exc}") from exc
        return [self._to_record(item) for item in items]

    def count(
        self,
        *,
        assigned_team: str | None = None,
        assigned_to: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> int:
        kwargs: dict[str, Any] = {
            "FilterExpression": self._filter(statuses, None, assigned_team, assigned_to),
            "Select": "COUNT",
        }
        total = 0
        try:
            while True:
                resp = self._table.scan(**kwargs)
                total += resp.get("Count", 0)
                if "LastEvaluatedKey" not in resp:
                    return total
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as exc:
            raise StoreError(f"DynamoDB Scan failed: {exc}") from exc


class DynamoDBDirectory(_DynamoTable):
    """Production IDirectory backed by DynamoDB."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        super().__init__(DIRECTORY_TABLE, table_suffix, region, endpoint_url)

    def _get(self, pk: str, sk: str) -> dict[str, Any] | None:
        try:
            resp = self._table.get_item(Key={"PK": pk, "SK": sk})
        except ClientError as exc:
            raise StoreError(f"DynamoDB GetItem failed for {pk!r}: {exc}") from exc
        item = resp.get("Item")
        return _strip_keys(item) if item else None

    def _put(self, pk: str, sk: str, model: BaseModel) -> None:
        item = _encode(model)
        item.update({"PK": pk, "SK": sk})
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            raise StoreError(f"DynamoDB PutItem failed for {pk!r}: {exc}") from exc

    def _increment(self, pk: str, sk: str, stat: str, amount: int) -> None:
        try:
            self._table.update_item(
                Key={"PK": pk, "SK": sk},
                UpdateExpression="SET #stats.#stat = #stats.#stat + :amount",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames={"#stats": "stats", "#stat": stat},
                ExpressionAttributeValues={":amount": amount},
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return
            raise StoreError(f"DynamoDB stat increment failed for {pk!r}: {exc}") from exc

    def list_teams(self, active_only: bool = True) -> list[Team]:
        expr = Attr("SK").eq("TEAM")
        if active_only:
            expr = expr & Attr("is_active").eq(True)
        teams = [Team.model_validate(_strip_keys(i)) for i in self._scan(FilterExpression=expr)]
        return sorted(teams, key=lambda t: t.name)

    def get_team(self, team_id: str) -> Team | None:
        item = self._get(f"TEAM#{team_id}", "TEAM")
        return Team.model_validate(item) if item else None

    def list_users(self, team_id: str, active_only: bool = True) -> list[User]:
        expr = Attr("SK").eq("USER") & Attr("team").eq(team_id)
        if active_only:
            expr = expr & Attr("is_active").eq(True)
        users = [User.model_validate(_strip_keys(i)) for i in self._scan(FilterExpression=expr)]
        return sorted(users, key=lambda u: u.name)

    def get_user(self, user_id: str) -> User | None:
        item = self._get(f"USER#{user_id}", "USER")
        return User.model_validate(item) if item else None

    def save_team(self, team: Team) -> None:
        self._put(f"TEAM#{team.id}", "TEAM", team)

    def save_user(self, user: User) -> None:
        self._put(f"USER#{user.id}", "USER", user)

    def increment_team_stat(self, team_id: str, stat: str, amount: int = 1) -> None:
        self._increment(f"TEAM#{team_id}", "TEAM", stat, amount)

    def increment_user_stat(self, user_id: str, stat: str, amount: int = 1) -> None:
        self._increment(f"USER#{user_id}", "USER", stat, amount)
