# src/aws_wire/schemas.py

from datetime import datetime
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_PRESIGN_EXPIRES = 604_800

# --- Static Type Hinting (for mypy and IDEs) ---


class CompletedPartDict(TypedDict):
    PartNumber: int
    ETag: str


class AttributeValueDict(TypedDict, total=False):
    """Wire shape of a DynamoDB attribute value; exactly one key is present."""

    S: str
    N: str
    B: str
    BOOL: bool
    NULL: bool
    L: list["AttributeValueDict"]
    M: dict[str, "AttributeValueDict"]
    SS: list[str]
    NS: list[str]
    BS: list[str]


# --- Runtime Validation (using Pydantic) ---


class PresignedUrlRequest(BaseModel):
    """
    Arguments for an S3 presigned URL.

    ``expires_in`` above the SigV4 maximum of seven days is clamped to it;
    anything below one second is rejected.
    """

    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    method: Literal["GET", "PUT"] = "GET"
    expires_in: int = 3600

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("expires_in")
    @classmethod
    def clamp_expiry(cls, value: int) -> int:
        if value < 1:
            raise ValueError("expires_in must be at least 1 second")
        return min(value, MAX_PRESIGN_EXPIRES)


class CompletedPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    part_number: int = Field(..., ge=1, le=10_000)
    etag: str = Field(..., min_length=1)
    size: int = Field(0, ge=0, exclude=True)

    def to_wire(self) -> CompletedPartDict:
        return {"PartNumber": self.part_number, "ETag": self.etag}


class S3ObjectSummary(BaseModel):
    """One ``<Contents>`` entry of a ListObjectsV2 response."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="Key")
    size: int = Field(0, alias="Size")
    etag: str | None = Field(None, alias="ETag")
    last_modified: datetime | None = Field(None, alias="LastModified")
    storage_class: str | None = Field(None, alias="StorageClass")


class ListObjectsV2Result(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = Field(None, alias="Name")
    prefix: str | None = Field(None, alias="Prefix")
    contents: list[S3ObjectSummary] = Field(default_factory=list, alias="Contents")
    common_prefixes: list[str] = Field(default_factory=list, alias="CommonPrefixes")
    is_truncated: bool = Field(False, alias="IsTruncated")
    key_count: int = Field(0, alias="KeyCount")
    max_keys: int = Field(1000, alias="MaxKeys")
    continuation_token: str | None = Field(None, alias="ContinuationToken")
    next_continuation_token: str | None = Field(None, alias="NextContinuationToken")


class DynamoDBPage(BaseModel):
    """
    A Query or Scan response with items already converted to Python values.
    ``last_evaluated_key`` is passed back as ``exclusive_start_key`` to continue.
    """

    model_config = ConfigDict(populate_by_name=True)

    items: list[dict[str, Any]] = Field(default_factory=list, alias="Items")
    count: int = Field(0, alias="Count")
    scanned_count: int = Field(0, alias="ScannedCount")
    last_evaluated_key: dict[str, Any] | None = Field(None, alias="LastEvaluatedKey")
    consumed_capacity: dict[str, Any] | None = Field(None, alias="ConsumedCapacity")
