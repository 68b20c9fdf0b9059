# src/aws_wire/services/cloudtrail.py

from datetime import datetime
from typing import Any, Mapping

from ..protocols import JsonRpcProtocol
from .base import ServiceClient, tag_list

TARGET_PREFIX = "com.amazonaws.cloudtrail.v20131101.CloudTrail_20131101"


class CloudTrailClient(ServiceClient):
    signing_name = "cloudtrail"

    @classmethod
    def build_protocol(cls) -> JsonRpcProtocol:
        return JsonRpcProtocol(TARGET_PREFIX, json_version="1.1")

    def create_trail(
        self,
        name: str,
        s3_bucket_name: str,
        s3_key_prefix: str | None = None,
        include_global_service_events: bool | None = None,
        is_multi_region_trail: bool | None = None,
        enable_log_file_validation: bool | None = None,
        cloud_watch_logs_log_group_arn: str | None = None,
        cloud_watch_logs_role_arn: str | None = None,
        kms_key_id: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        return self._call(
            "CreateTrail",
            {
                "Name": name,
                "S3BucketName": s3_bucket_name,
                "S3KeyPrefix": s3_key_prefix,
                "IncludeGlobalServiceEvents": include_global_service_events,
                "IsMultiRegionTrail": is_multi_region_trail,
                "EnableLogFileValidation": enable_log_file_validation,
                "CloudWatchLogsLogGroupArn": cloud_watch_logs_log_group_arn,
                "CloudWatchLogsRoleArn": cloud_watch_logs_role_arn,
                "KmsKeyId": kms_key_id,
                "TagsList": tag_list(tags),
            },
        )

    def delete_trail(self, name: str) -> None:
        self._call("DeleteTrail", {"Name": name})

    def describe_trails(
        self, trail_names: list[str] | None = None, include_shadow_trails: bool | None = None
    ) -> list[dict[str, Any]]:
        result = self._call(
            "DescribeTrails",
            {"trailNameList": trail_names, "includeShadowTrails": include_shadow_trails},
        )
        return result.get("trailList", [])

    def list_trails(self, next_token: str | None = None) -> dict[str, Any]:
        return self._call("ListTrails", {"NextToken": next_token})

    def get_trail_status(self, name: str) -> dict[str, Any]:
        return self._call("GetTrailStatus", {"Name": name})

    def start_logging(self, name: str) -> None:
        self._call("StartLogging", {"Name": name})

    def stop_logging(self, name: str) -> None:
        self._call("StopLogging", {"Name": name})

    def lookup_events(
        self,
        lookup_attributes: Mapping[str, str] | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        event_category: str | None = None,
        max_results: int | None = None,
        next_token: str | None = None,
    ) -> dict[str, Any]:
        """
        Searches management events from the last 90 days.

        ``lookup_attributes`` maps an attribute key (``EventName``,
        ``Username``, ``ResourceName``...) to the value to match.
        """
        attributes = None
        if lookup_attributes:
            attributes = [
                {"AttributeKey": key, "AttributeValue": value}
                for key, value in lookup_attributes.items()
            ]
        return self._call(
            "LookupEvents",
            {
                "LookupAttributes": attributes,
                "StartTime": start_time,
                "EndTime": end_time,
                "EventCategory": event_category,
                "MaxResults": max_results,
                "NextToken": next_token,
            },
        )
