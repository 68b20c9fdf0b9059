# src/aws_wire/services/elasticache.py

from typing import Any, Literal, Mapping

from ..protocols import QueryProtocol
from .base import ServiceClient, as_list, tag_list

API_VERSION = "2015-02-02"

# ElastiCache names its list members instead of using ``member``.
RESPONSE_LIST_TAGS = (
    "CacheCluster",
    "CacheNode",
    "CacheEngineVersion",
    "ReplicationGroup",
    "NodeGroup",
    "NodeGroupMember",
    "ClusterId",
    "SecurityGroupMembership",
    "CacheSecurityGroup",
)
REQUEST_MEMBER_NAMES = {
    "SecurityGroupIds": "SecurityGroupId",
    "CacheSecurityGroupNames": "CacheSecurityGroupName",
    "CacheNodeIdsToReboot": "CacheNodeId",
    "PreferredAvailabilityZones": "PreferredAvailabilityZone",
    "Tags": "Tag",
}


class ElastiCacheClient(ServiceClient):
    signing_name = "elasticache"

    @classmethod
    def build_protocol(cls) -> QueryProtocol:
        return QueryProtocol(
            API_VERSION, list_tags=RESPONSE_LIST_TAGS, member_names=REQUEST_MEMBER_NAMES
        )

    def describe_cache_clusters(
        self,
        cache_cluster_id: str | None = None,
        show_cache_node_info: bool = True,
        marker: str | None = None,
        max_records: int | None = None,
    ) -> dict[str, Any]:
        """Returns ``CacheClusters`` and, when more remain, ``Marker``."""
        result = self._call(
            "DescribeCacheClusters",
            {
                "CacheClusterId": cache_cluster_id,
                "ShowCacheNodeInfo": show_cache_node_info,
                "Marker": marker,
                "MaxRecords": max_records,
            },
        )
        return {"CacheClusters": as_list(result.get("CacheClusters")), "Marker": result.get("Marker")}

    def describe_replication_groups(
        self,
        replication_group_id: str | None = None,
        marker: str | None = None,
        max_records: int | None = None,
    ) -> dict[str, Any]:
        result = self._call(
            "DescribeReplicationGroups",
            {
                "ReplicationGroupId": replication_group_id,
                "Marker": marker,
                "MaxRecords": max_records,
            },
        )
        return {
            "ReplicationGroups": as_list(result.get("ReplicationGroups")),
            "Marker": result.get("Marker"),
        }

    def create_cache_cluster(
        self,
        cache_cluster_id: str,
        engine: Literal["memcached", "redis", "valkey"],
        cache_node_type: str,
        num_cache_nodes: int | None = None,
        engine_version: str | None = None,
        port: int | None = None,
        security_group_ids: list[str] | None = None,
        cache_subnet_group_name: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        result = self._call(
            "CreateCacheCluster",
            {
                "CacheClusterId": cache_cluster_id,
                "Engine": engine,
                "CacheNodeType": cache_node_type,
                "NumCacheNodes": num_cache_nodes,
                "EngineVersion": engine_version,
                "Port": port,
                "SecurityGroupIds": security_group_ids or None,
                "CacheSubnetGroupName": cache_subnet_group_name,
                "Tags": tag_list(tags),
            },
        )
        return result.get("CacheCluster") or {}

    def delete_cache_cluster(
        self, cache_cluster_id: str, final_snapshot_identifier: str | None = None
    ) -> dict[str, Any]:
        result = self._call(
            "DeleteCacheCluster",
            {
                "CacheClusterId": cache_cluster_id,
                "FinalSnapshotIdentifier": final_snapshot_identifier,
            },
        )
        return result.get("CacheCluster") or {}

    def reboot_cache_cluster(self, cache_cluster_id: str, cache_node_ids: list[str]) -> dict[str, Any]:
        result = self._call(
            "RebootCacheCluster",
            {"CacheClusterId": cache_cluster_id, "CacheNodeIdsToReboot": cache_node_ids},
        )
        return result.get("CacheCluster") or {}

    def describe_cache_engine_versions(
        self,
        engine: str | None = None,
        engine_version: str | None = None,
        marker: str | None = None,
    ) -> dict[str, Any]:
        result = self._call(
            "DescribeCacheEngineVersions",
            {"Engine": engine, "EngineVersion": engine_version, "Marker": marker},
        )
        return {
            "CacheEngineVersions": as_list(result.get("CacheEngineVersions")),
            "Marker": result.get("Marker"),
        }
