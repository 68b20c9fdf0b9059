# src/aws_wire/services/dynamodb.py

"""
DynamoDB over AWS JSON 1.0.

Items go in and come out as plain Python values; conversion to and from the
AttributeValue wire form happens here. ``int``, ``float`` and ``Decimal`` all
map to ``N``; on the way back integral numbers become ``int`` and everything
else ``Decimal``, so no precision is lost on DynamoDB's 38-digit numbers.
"""

import base64
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Literal, Mapping

from ..exceptions import ValidationError
from ..protocols import JsonRpcProtocol
from ..schemas import AttributeValueDict, DynamoDBPage
from .base import ServiceClient, tag_list

TARGET_PREFIX = "DynamoDB_20120810"


# --- AttributeValue conversion ---

def _number_string(value: int | float | Decimal) -> str:
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(
                f"DynamoDB numbers must be finite, got {value!r}", code="InvalidArgument"
            )
        return repr(value)
    if isinstance(value, Decimal) and not value.is_finite():
        raise ValidationError(
            f"DynamoDB numbers must be finite, got {value!r}", code="InvalidArgument"
        )
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _marshal_set(value: set | frozenset) -> AttributeValueDict:
    if not value:
        raise ValidationError("DynamoDB does not store empty sets", code="InvalidArgument")
    if all(isinstance(v, str) for v in value):
        return {"SS": sorted(value)}
    if all(_is_number(v) for v in value):
        return {"NS": sorted(_number_string(v) for v in value)}
    if all(isinstance(v, (bytes, bytearray)) for v in value):
        return {"BS": sorted(base64.b64encode(bytes(v)).decode("ascii") for v in value)}
    raise ValidationError(
        "Set members must all be strings, all numbers or all binary", code="InvalidArgument"
    )


def marshal_value(value: Any) -> AttributeValueDict:
    if value is None:
        return {"NULL": True}
    # bool before the numeric check: bool is a subclass of int.
    if isinstance(value, bool):
        return {"BOOL": value}
    if _is_number(value):
        return {"N": _number_string(value)}
    if isinstance(value, str):
        return {"S": value}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"B": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (set, frozenset)):
        return _marshal_set(value)
    if isinstance(value, Mapping):
        return {"M": marshal(value)}
    if isinstance(value, (list, tuple)):
        return {"L": [marshal_value(item) for item in value]}
    raise ValidationError(
        f"Cannot convert {type(value).__name__} to a DynamoDB attribute value",
        code="InvalidArgument",
    )


def marshal(item: Mapping[str, Any]) -> dict[str, AttributeValueDict]:
    return {key: marshal_value(value) for key, value in item.items()}


def _parse_number(text: str) -> int | Decimal:
    try:
        number = Decimal(text)
    except InvalidOperation as e:
        raise ValidationError(
            f"Invalid DynamoDB number: {text!r}", code="InvalidArgument"
        ) from e
    if number == number.to_integral_value():
        return int(number)
    return number


def unmarshal_value(attribute: Mapping[str, Any]) -> Any:
    if len(attribute) != 1:
        raise ValidationError(
            f"An attribute value has exactly one type key, got {sorted(attribute)}",
            code="InvalidArgument",
        )
    (kind, value), = attribute.items()

    if kind == "S":
        return value
    if kind == "N":
        return _parse_number(value)
    if kind == "BOOL":
        return bool(value)
    if kind == "NULL":
        return None
    if kind == "B":
        return base64.b64decode(value)
    if kind == "L":
        return [unmarshal_value(item) for item in value]
    if kind == "M":
        return unmarshal(value)
    if kind == "SS":
        return set(value)
    if kind == "NS":
        return {_parse_number(v) for v in value}
    if kind == "BS":
        return {base64.b64decode(v) for v in value}
    raise ValidationError(f"Unknown attribute value type: {kind}", code="InvalidArgument")


def unmarshal(item: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
    return {key: unmarshal_value(value) for key, value in item.items()}


def _maybe_marshal(values: Mapping[str, Any] | None) -> dict | None:
    return marshal(values) if values else None


def _maybe_unmarshal(item: Mapping[str, Any] | None) -> dict | None:
    return unmarshal(item) if item else None


# --- Client ---

class DynamoDBClient(ServiceClient):
    signing_name = "dynamodb"

    @classmethod
    def build_protocol(cls) -> JsonRpcProtocol:
        return JsonRpcProtocol(TARGET_PREFIX, json_version="1.0")

    # Tables

    def create_table(
        self,
        table_name: str,
        key_schema: list[dict[str, str]],
        attribute_definitions: list[dict[str, str]],
        billing_mode: Literal["PAY_PER_REQUEST", "PROVISIONED"] = "PAY_PER_REQUEST",
        provisioned_throughput: dict[str, int] | None = None,
        global_secondary_indexes: list[dict] | None = None,
        local_secondary_indexes: list[dict] | None = None,
        stream_specification: dict | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        if billing_mode == "PROVISIONED" and not provisioned_throughput:
            raise ValidationError(
                "PROVISIONED billing needs provisioned_throughput", code="InvalidArgument"
            )
        result = self._call(
            "CreateTable",
            {
                "TableName": table_name,
                "KeySchema": key_schema,
                "AttributeDefinitions": attribute_definitions,
                "BillingMode": billing_mode,
                "ProvisionedThroughput": provisioned_throughput,
                "GlobalSecondaryIndexes": global_secondary_indexes,
                "LocalSecondaryIndexes": local_secondary_indexes,
                "StreamSpecification": stream_specification,
                "Tags": tag_list(tags),
            },
        )
        return result.get("TableDescription", {})

    def delete_table(self, table_name: str) -> dict[str, Any]:
        return self._call("DeleteTable", {"TableName": table_name}).get("TableDescription", {})

    def describe_table(self, table_name: str) -> dict[str, Any]:
        return self._call("DescribeTable", {"TableName": table_name}).get("Table", {})

    def list_tables(
        self, limit: int | None = None, exclusive_start_table_name: str | None = None
    ) -> dict[str, Any]:
        """Returns ``TableNames`` and, when more remain, ``LastEvaluatedTableName``."""
        return self._call(
            "ListTables",
            {"Limit": limit, "ExclusiveStartTableName": exclusive_start_table_name},
        )

    def update_time_to_live(
        self, table_name: str, attribute_name: str, enabled: bool = True
    ) -> dict[str, Any]:
        result = self._call(
            "UpdateTimeToLive",
            {
                "TableName": table_name,
                "TimeToLiveSpecification": {"AttributeName": attribute_name, "Enabled": enabled},
            },
        )
        return result.get("TimeToLiveSpecification", {})

    # Items

    def put_item(
        self,
        table_name: str,
        item: Mapping[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: Mapping[str, str] | None = None,
        expression_attribute_values: Mapping[str, Any] | None = None,
        return_values: str | None = None,
    ) -> dict[str, Any] | None:
        """Writes ``item``; returns the old attributes when ``return_values`` asks for them."""
        result = self._call(
            "PutItem",
            {
                "TableName": table_name,
                "Item": marshal(item),
                "ConditionExpression": condition_expression,
                "ExpressionAttributeNames": expression_attribute_names,
                "ExpressionAttributeValues": _maybe_marshal(expression_attribute_values),
                "ReturnValues": return_values,
            },
        )
        return _maybe_unmarshal(result.get("Attributes"))

    def get_item(
        self,
        table_name: str,
        key: Mapping[str, Any],
        consistent_read: bool | None = None,
        projection_expression: str | None = None,
        expression_attribute_names: Mapping[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """Returns the item, or None when no item has ``key``."""
        result = self._call(
            "GetItem",
            {
                "TableName": table_name,
                "Key": marshal(key),
                "ConsistentRead": consistent_read,
                "ProjectionExpression": projection_expression,
                "ExpressionAttributeNames": expression_attribute_names,
            },
        )
        return _maybe_unmarshal(result.get("Item"))

    def update_item(
        self,
        table_name: str,
        key: Mapping[str, Any],
        update_expression: str,
        condition_expression: str | None = None,
        expression_attribute_names: Mapping[str, str] | None = None,
        expression_attribute_values: Mapping[str, Any] | None = None,
        return_values: str | None = None,
    ) -> dict[str, Any] | None:
        result = self._call(
            "UpdateItem",
            {
                "TableName": table_name,
                "Key": marshal(key),
                "UpdateExpression": update_expression,
                "ConditionExpression": condition_expression,
                "ExpressionAttributeNames": expression_attribute_names,
                "ExpressionAttributeValues": _maybe_marshal(expression_attribute_values),
                "ReturnValues": return_values,
            },
        )
        return _maybe_unmarshal(result.get("Attributes"))

    def delete_item(
        self,
        table_name: str,
        key: Mapping[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: Mapping[str, str] | None = None,
        expression_attribute_values: Mapping[str, Any] | None = None,
        return_values: str | None = None,
    ) -> dict[str, Any] | None:
        result = self._call(
            "DeleteItem",
            {
                "TableName": table_name,
                "Key": marshal(key),
                "ConditionExpression": condition_expression,
                "ExpressionAttributeNames": expression_attribute_names,
                "ExpressionAttributeValues": _maybe_marshal(expression_attribute_values),
                "ReturnValues": return_values,
            },
        )
        return _maybe_unmarshal(result.get("Attributes"))

    # Reads over many items

    def query(
        self,
        table_name: str,
        key_condition_expression: str,
        expression_attribute_values: Mapping[str, Any] | None = None,
        expression_attribute_names: Mapping[str, str] | None = None,
        index_name: str | None = None,
        filter_expression: str | None = None,
        projection_expression: str | None = None,
        limit: int | None = None,
        scan_index_forward: bool | None = None,
        consistent_read: bool | None = None,
        exclusive_start_key: Mapping[str, Any] | None = None,
    ) -> DynamoDBPage:
        """Returns one page. Pass ``last_evaluated_key`` back as ``exclusive_start_key``."""
        result = self._call(
            "Query",
            {
                "TableName": table_name,
                "KeyConditionExpression": key_condition_expression,
                "ExpressionAttributeValues": _maybe_marshal(expression_attribute_values),
                "ExpressionAttributeNames": expression_attribute_names,
                "IndexName": index_name,
                "FilterExpression": filter_expression,
                "ProjectionExpression": projection_expression,
                "Limit": limit,
                "ScanIndexForward": scan_index_forward,
                "ConsistentRead": consistent_read,
                "ExclusiveStartKey": _maybe_marshal(exclusive_start_key),
            },
        )
        return self._page(result)

    def scan(
        self,
        table_name: str,
        filter_expression: str | None = None,
        expression_attribute_values: Mapping[str, Any] | None = None,
        expression_attribute_names: Mapping[str, str] | None = None,
        index_name: str | None = None,
        projection_expression: str | None = None,
        limit: int | None = None,
        segment: int | None = None,
        total_segments: int | None = None,
        consistent_read: bool | None = None,
        exclusive_start_key: Mapping[str, Any] | None = None,
    ) -> DynamoDBPage:
        if (segment is None) != (total_segments is None):
            raise ValidationError(
                "segment and total_segments must be given together", code="InvalidArgument"
            )
        result = self._call(
            "Scan",
            {
                "TableName": table_name,
                "FilterExpression": filter_expression,
                "ExpressionAttributeValues": _maybe_marshal(expression_attribute_values),
                "ExpressionAttributeNames": expression_attribute_names,
                "IndexName": index_name,
                "ProjectionExpression": projection_expression,
                "Limit": limit,
                "Segment": segment,
                "TotalSegments": total_segments,
                "ConsistentRead": consistent_read,
                "ExclusiveStartKey": _maybe_marshal(exclusive_start_key),
            },
        )
        return self._page(result)

    @staticmethod
    def _page(result: Mapping[str, Any]) -> DynamoDBPage:
        return DynamoDBPage(
            items=[unmarshal(item) for item in result.get("Items", [])],
            count=result.get("Count", 0),
            scanned_count=result.get("ScannedCount", 0),
            last_evaluated_key=_maybe_unmarshal(result.get("LastEvaluatedKey")),
            consumed_capacity=result.get("ConsumedCapacity"),
        )

    # Batches

    def batch_write_item(
        self, request_items: Mapping[str, list[Mapping[str, Any]]]
    ) -> dict[str, Any]:
        """
        ``request_items`` maps table names to ``{"PutRequest": {"Item": ...}}`` or
        ``{"DeleteRequest": {"Key": ...}}`` entries with plain Python values.
        Returns the ``UnprocessedItems`` left for the caller to resubmit.
        """
        wire: dict[str, list[dict]] = {}
        for table, requests in request_items.items():
            entries = []
            for entry in requests:
                if "PutRequest" in entry:
                    entries.append({"PutRequest": {"Item": marshal(entry["PutRequest"]["Item"])}})
                elif "DeleteRequest" in entry:
                    entries.append({"DeleteRequest": {"Key": marshal(entry["DeleteRequest"]["Key"])}})
                else:
                    raise ValidationError(
                        "Batch write entries need a PutRequest or a DeleteRequest",
                        code="InvalidArgument",
                        context={"table": table},
                    )
            wire[table] = entries

        result = self._call("BatchWriteItem", {"RequestItems": wire})
        return result.get("UnprocessedItems", {})

    def batch_get_item(
        self, request_items: Mapping[str, Mapping[str, Any]]
    ) -> dict[str, Any]:
        """
        ``request_items`` maps table names to ``{"Keys": [...], ...}`` with plain
        key values. Returns ``{"Responses": {table: [items]}, "UnprocessedKeys": ...}``.
        """
        wire = {
            table: {**spec, "Keys": [marshal(key) for key in spec["Keys"]]}
            for table, spec in request_items.items()
        }
        result = self._call("BatchGetItem", {"RequestItems": wire})
        responses = {
            table: [unmarshal(item) for item in items]
            for table, items in result.get("Responses", {}).items()
        }
        return {"Responses": responses, "UnprocessedKeys": result.get("UnprocessedKeys", {})}
