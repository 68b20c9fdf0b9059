# src/aws_wire/services/eventbridge.py

import json
from typing import Any, Literal, Mapping

from ..exceptions import ValidationError
from ..protocols import JsonRpcProtocol
from .base import ServiceClient, tag_list

MAX_PUT_EVENTS_ENTRIES = 10


def _as_json(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


class EventBridgeClient(ServiceClient):
    """EventBridge (formerly CloudWatch Events) rules, targets and custom events."""

    signing_name = "events"

    @classmethod
    def build_protocol(cls) -> JsonRpcProtocol:
        return JsonRpcProtocol("AWSEvents", json_version="1.1")

    def put_rule(
        self,
        name: str,
        schedule_expression: str | None = None,
        event_pattern: Mapping[str, Any] | str | None = None,
        state: Literal["ENABLED", "DISABLED"] | None = None,
        description: str | None = None,
        role_arn: str | None = None,
        event_bus_name: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        """Creates or updates a rule and returns its ARN."""
        if schedule_expression is None and event_pattern is None:
            raise ValidationError(
                "A rule needs a schedule_expression or an event_pattern",
                code="InvalidArgument",
                context={"rule": name},
            )
        result = self._call(
            "PutRule",
            {
                "Name": name,
                "ScheduleExpression": schedule_expression,
                "EventPattern": _as_json(event_pattern),
                "State": state,
                "Description": description,
                "RoleArn": role_arn,
                "EventBusName": event_bus_name,
                "Tags": tag_list(tags),
            },
        )
        return result.get("RuleArn", "")

    def delete_rule(
        self, name: str, event_bus_name: str | None = None, force: bool | None = None
    ) -> None:
        self._call("DeleteRule", {"Name": name, "EventBusName": event_bus_name, "Force": force})

    def describe_rule(self, name: str, event_bus_name: str | None = None) -> dict[str, Any]:
        return self._call("DescribeRule", {"Name": name, "EventBusName": event_bus_name})

    def list_rules(
        self,
        name_prefix: str | None = None,
        event_bus_name: str | None = None,
        next_token: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        return self._call(
            "ListRules",
            {
                "NamePrefix": name_prefix,
                "EventBusName": event_bus_name,
                "NextToken": next_token,
                "Limit": limit,
            },
        )

    def enable_rule(self, name: str, event_bus_name: str | None = None) -> None:
        self._call("EnableRule", {"Name": name, "EventBusName": event_bus_name})

    def disable_rule(self, name: str, event_bus_name: str | None = None) -> None:
        self._call("DisableRule", {"Name": name, "EventBusName": event_bus_name})

    def put_targets(
        self, rule: str, targets: list[Mapping[str, Any]], event_bus_name: str | None = None
    ) -> dict[str, Any]:
        """Returns ``FailedEntryCount`` and ``FailedEntries``; partial failure is not raised."""
        return self._call(
            "PutTargets",
            {"Rule": rule, "Targets": list(targets), "EventBusName": event_bus_name},
        )

    def remove_targets(
        self,
        rule: str,
        ids: list[str],
        event_bus_name: str | None = None,
        force: bool | None = None,
    ) -> dict[str, Any]:
        return self._call(
            "RemoveTargets",
            {"Rule": rule, "Ids": list(ids), "EventBusName": event_bus_name, "Force": force},
        )

    def list_targets_by_rule(
        self,
        rule: str,
        event_bus_name: str | None = None,
        next_token: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        return self._call(
            "ListTargetsByRule",
            {"Rule": rule, "EventBusName": event_bus_name, "NextToken": next_token, "Limit": limit},
        )

    def put_events(self, entries: list[Mapping[str, Any]]) -> dict[str, Any]:
        """
        Publishes up to ten events. A ``Detail`` given as a mapping is encoded
        to a JSON string. Per-entry failures come back in ``Entries``.
        """
        if not entries or len(entries) > MAX_PUT_EVENTS_ENTRIES:
            raise ValidationError(
                f"put_events takes between 1 and {MAX_PUT_EVENTS_ENTRIES} entries",
                code="InvalidArgument",
                context={"entries": len(entries)},
            )
        wire = [
            {**entry, "Detail": _as_json(entry["Detail"])} if "Detail" in entry else dict(entry)
            for entry in entries
        ]
        return self._call("PutEvents", {"Entries": wire})
