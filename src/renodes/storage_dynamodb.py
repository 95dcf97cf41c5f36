"""DynamoDB record store: one table, two global secondary indexes."""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import reduce
from typing import Any

import boto3
from boto3.dynamodb.conditions import Attr, ConditionBase, Key
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from renodes.conditions import (
    ComparisonCondition,
    Condition,
    ExistsCondition,
    LogicalCondition,
)
from renodes.config import RenodesConfig
from renodes.errors import ConditionFailedError, MetadataMissingError, StorageBackendError
from renodes.records import TAIL, Record
from renodes.storage import validate_changes, validate_metadata_key

logger = logging.getLogger(__name__)

BY_BRANCH_INDEX = "byBranch"
BY_NEXT_INDEX = "byNext"

# Logical record attribute -> stored attribute name.
ATTRIBUTE_NAMES = {
    "key": "pk",
    "collection": "_b",
    "successor": "_n",
    "content": "content",
    "kind": "_t",
    "metadata": "_m",
}


def table_definition(table_name: str) -> dict[str, Any]:
    """Return the ``CreateTable`` request for a renodes table."""
    return {
        "TableName": table_name,
        "AttributeDefinitions": [
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "_b", "AttributeType": "S"},
            {"AttributeName": "_n", "AttributeType": "S"},
        ],
        "KeySchema": [{"AttributeName": "pk", "KeyType": "HASH"}],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": BY_BRANCH_INDEX,
                "KeySchema": [
                    {"AttributeName": "_b", "KeyType": "HASH"},
                    {"AttributeName": "pk", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": BY_NEXT_INDEX,
                "KeySchema": [
                    {"AttributeName": "_b", "KeyType": "HASH"},
                    {"AttributeName": "_n", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }


def _compile_dynamo_condition(cond: Condition) -> ConditionBase:
    """Compile a Condition tree into a boto3 condition expression."""
    if isinstance(cond, ComparisonCondition):
        attribute = Attr(ATTRIBUTE_NAMES[cond.attribute])
        if cond.op == "==":
            return attribute.eq(cond.value)
        if cond.op == "!=":
            return attribute.ne(cond.value)
        raise ValueError(f"Unknown comparison operator: {cond.op}")
    elif isinstance(cond, ExistsCondition):
        attribute = Attr(ATTRIBUTE_NAMES[cond.attribute])
        return attribute.exists() if cond.exists else attribute.not_exists()
    elif isinstance(cond, LogicalCondition):
        children = [_compile_dynamo_condition(c) for c in cond.children]
        if cond.op == "NOT":
            return ~children[0]
        if cond.op == "AND":
            return reduce(lambda a, b: a & b, children)
        if cond.op == "OR":
            return reduce(lambda a, b: a | b, children)
    raise ValueError(f"Unknown condition type: {type(cond)}")


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def _item_to_record(item: dict[str, Any]) -> Record:
    return Record(
        key=item["pk"],
        collection=item["_b"],
        successor=item.get("_n", TAIL),
        content=item.get("content"),
        kind=item.get("_t"),
        metadata=_from_dynamo(item["_m"]) if "_m" in item else None,
    )


def _record_to_item(record: Record) -> dict[str, Any]:
    return {
        ATTRIBUTE_NAMES[name]: _to_dynamo(value) for name, value in record.to_dict().items()
    }


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


class DynamoRecordStore:
    """DynamoDB-backed record store.

    Point reads are strongly consistent. Index queries go through global
    secondary indexes, which DynamoDB only serves eventually consistent.
    """

    def __init__(
        self,
        *,
        table_name: str,
        config: RenodesConfig,
        table: Any | None = None,
    ) -> None:
        self.table_name = table_name
        self._config = config
        if table is None:
            session = boto3.Session(region_name=config.region)
            resource = session.resource(
                "dynamodb",
                region_name=config.region,
                endpoint_url=config.endpoint_url,
                config=BotoConfig(
                    connect_timeout=config.request_timeout_s,
                    read_timeout=config.request_timeout_s,
                    retries={"max_attempts": 5, "mode": "standard"},
                ),
            )
            table = resource.Table(table_name)
        self._table = table

    def close(self) -> None:
        pass

    # --- Schema ---

    def create_schema(self) -> None:
        client = self._table.meta.client
        try:
            client.create_table(**table_definition(self.table_name))
        except ClientError as e:
            if _error_code(e) == "ResourceInUseException":
                logger.info("Table %s already exists", self.table_name)
                return
            raise StorageBackendError("create_schema", str(e)) from e
        client.get_waiter("table_exists").wait(TableName=self.table_name)

    def drop_schema(self) -> None:
        client = self._table.meta.client
        try:
            client.delete_table(TableName=self.table_name)
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                return
            raise StorageBackendError("drop_schema", str(e)) from e
        client.get_waiter("table_not_exists").wait(TableName=self.table_name)

    def storage_info(self) -> dict[str, Any]:
        return {
            "backend": "dynamodb",
            "table_name": self.table_name,
            "region": self._config.region,
            "endpoint_url": self._config.endpoint_url,
        }

    # --- Point access ---

    def _call(self, operation: str, key: str, fn: Any, **kwargs: Any) -> Any:
        try:
            return fn(**kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code == "ConditionalCheckFailedException":
                raise ConditionFailedError(key) from e
            raise StorageBackendError(operation, str(e)) from e

    def get(self, key: str) -> Record | None:
        resp = self._call(
            "get", key, self._table.get_item, Key={"pk": key}, ConsistentRead=True
        )
        item = resp.get("Item")
        return _item_to_record(item) if item else None

    def put(self, record: Record, condition: Condition | None = None) -> None:
        kwargs: dict[str, Any] = {"Item": _record_to_item(record)}
        if condition is not None:
            kwargs["ConditionExpression"] = _compile_dynamo_condition(condition)
        self._call("put", record.key, self._table.put_item, **kwargs)

    def update(
        self, key: str, changes: dict[str, Any], condition: Condition | None = None
    ) -> None:
        """Set top-level attributes; ``None`` values are removed.

        UpdateItem would create a missing item, so every update is guarded by
        the record's existence.
        """
        validate_changes(changes)
        if not changes:
            return
        # boto3 names compiled condition placeholders #n<i> and :v<i>.
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_parts: list[str] = []
        remove_parts: list[str] = []
        for i, (name, value) in enumerate(changes.items()):
            names[f"#u{i}"] = ATTRIBUTE_NAMES[name]
            if value is None:
                remove_parts.append(f"#u{i}")
            else:
                values[f":u{i}"] = _to_dynamo(value)
                set_parts.append(f"#u{i} = :u{i}")
        expression = []
        if set_parts:
            expression.append("SET " + ", ".join(set_parts))
        if remove_parts:
            expression.append("REMOVE " + ", ".join(remove_parts))

        guard = Attr("pk").exists()
        if condition is not None:
            guard = guard & _compile_dynamo_condition(condition)
        kwargs: dict[str, Any] = {
            "Key": {"pk": key},
            "UpdateExpression": " ".join(expression),
            "ExpressionAttributeNames": names,
            "ConditionExpression": guard,
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        self._call("update", key, self._table.update_item, **kwargs)

    def update_metadata(
        self, key: str, values: dict[str, Any], condition: Condition | None = None
    ) -> None:
        """Set individual metadata sub-keys through nested document paths."""
        if not values:
            return
        names: dict[str, str] = {"#m": ATTRIBUTE_NAMES["metadata"]}
        expression_values: dict[str, Any] = {}
        parts: list[str] = []
        for i, (name, value) in enumerate(values.items()):
            validate_metadata_key(name)
            names[f"#k{i}"] = name
            expression_values[f":m{i}"] = _to_dynamo(value)
            parts.append(f"#m.#k{i} = :m{i}")

        guard = Attr("pk").exists()
        if condition is not None:
            guard = guard & _compile_dynamo_condition(condition)
        try:
            self._table.update_item(
                Key={"pk": key},
                UpdateExpression="SET " + ", ".join(parts),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=expression_values,
                ConditionExpression=guard,
            )
        except ClientError as e:
            code = _error_code(e)
            if code == "ConditionalCheckFailedException":
                raise ConditionFailedError(key) from e
            if code == "ValidationException":
                # The document path is invalid while the metadata map is absent.
                raise MetadataMissingError(key) from e
            raise StorageBackendError("update_metadata", str(e)) from e

    def delete(self, key: str, condition: Condition | None = None) -> None:
        kwargs: dict[str, Any] = {"Key": {"pk": key}}
        if condition is not None:
            kwargs["ConditionExpression"] = _compile_dynamo_condition(condition)
        self._call("delete", key, self._table.delete_item, **kwargs)

    # --- Index views ---

    def query_collection(self, collection: str) -> list[Record]:
        kwargs: dict[str, Any] = {
            "IndexName": BY_BRANCH_INDEX,
            "KeyConditionExpression": Key("_b").eq(collection),
        }
        records: list[Record] = []
        while True:
            resp = self._call("query_collection", collection, self._table.query, **kwargs)
            records.extend(_item_to_record(item) for item in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return records
            kwargs["ExclusiveStartKey"] = last_key

    def query_successor(self, collection: str, successor: str) -> Record | None:
        resp = self._call(
            "query_successor",
            collection,
            self._table.query,
            IndexName=BY_NEXT_INDEX,
            KeyConditionExpression=Key("_b").eq(collection) & Key("_n").eq(successor),
            Limit=2,
        )
        items = resp.get("Items", [])
        if not items:
            return None
        if len(items) > 1:
            logger.warning(
                "Collection %s has several records with successor %s", collection, successor
            )
        return _item_to_record(items[0])


__all__ = [
    "ATTRIBUTE_NAMES",
    "BY_BRANCH_INDEX",
    "BY_NEXT_INDEX",
    "DynamoRecordStore",
    "table_definition",
]
