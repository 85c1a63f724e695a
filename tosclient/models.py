"""Data models for TOS client inputs and outputs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from tosclient.policy import Rules


class ACL(Enum):
    """Canned ACLs accepted when creating a bucket."""

    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"
    BUCKET_OWNER_READ = "bucket-owner-read"
    BUCKET_OWNER_FULL_CONTROL = "bucket-owner-full-control"
    LOG_DELIVERY_WRITE = "log-delivery-write"


class StorageClass(Enum):
    """Storage classes of the Service."""

    STANDARD = "STANDARD"
    IA = "IA"
    ARCHIVE_FR = "ARCHIVE_FR"
    INTELLIGENT_TIERING = "INTELLIGENT_TIERING"
    COLD_ARCHIVE = "COLD_ARCHIVE"
    ARCHIVE = "ARCHIVE"


@dataclass
class RequestInfo:
    """Identifiers of a completed request, kept for support escalation."""

    request_id: str = ""
    id2: str = ""
    status_code: int = 0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class HeadBucketOutput:
    request_info: RequestInfo
    region: str = ""
    storage_class: str = ""


@dataclass
class CreateBucketOutput:
    request_info: RequestInfo
    location: str = ""


@dataclass
class DeleteBucketOutput:
    request_info: RequestInfo


@dataclass
class Owner:
    id: str = ""
    display_name: str = ""


@dataclass
class ListedBucket:
    """A bucket entry returned by ListBuckets."""

    name: str
    creation_date: Optional[datetime] = None
    location: str = ""
    extranet_endpoint: str = ""
    intranet_endpoint: str = ""


@dataclass
class ListBucketsOutput:
    request_info: RequestInfo
    owner: Owner = field(default_factory=Owner)
    buckets: list[ListedBucket] = field(default_factory=list)


@dataclass
class GetBucketPolicyOutput:
    request_info: RequestInfo
    policy: str = ""

    def rules(self) -> Rules:
        """Decode the policy text into a Rules document.

        Raises:
            InvalidPolicySyntax: If the policy is not a valid document.
        """
        return Rules.from_json(self.policy)


@dataclass
class PutBucketPolicyOutput:
    request_info: RequestInfo


@dataclass
class DeleteBucketPolicyOutput:
    request_info: RequestInfo
