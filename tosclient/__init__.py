"""
TOS client core.

Bucket policy document model, credentials, signing, transport, session and
client for the TOS S3-compatible object-storage service.
"""

__version__ = "2.0.0"

from tosclient.client import Client, ClientConfig
from tosclient.context import Context, background, with_timeout
from tosclient.credentials import (
    Credential,
    Credentials,
    EcsCredentials,
    EnvCredentials,
    RefreshingCredentials,
    StaticCredentials,
)
from tosclient.errors import (
    CanceledError,
    ClientInvalidArgumentError,
    ClientSerializationError,
    DeadlineExceededError,
    InvalidBucketNameError,
    InvalidEndpointError,
    InvalidPolicySyntax,
    MissingCredentialsError,
    MissingRegionError,
    NetworkError,
    ServiceError,
    ServiceUnparseableError,
    TosError,
)
from tosclient.policy import (
    Actions,
    Principals,
    Resources,
    Rules,
    Statement,
    all_actions,
    all_principals,
    some_actions,
    some_principals,
    some_resources,
)
from tosclient.session import Session
from tosclient.transport import DefaultTransport, Request, Response, Transport, TransportConfig

__all__ = [
    "__version__",
    "Actions",
    "CanceledError",
    "Client",
    "ClientConfig",
    "ClientInvalidArgumentError",
    "ClientSerializationError",
    "Context",
    "Credential",
    "Credentials",
    "DeadlineExceededError",
    "DefaultTransport",
    "EcsCredentials",
    "EnvCredentials",
    "InvalidBucketNameError",
    "InvalidEndpointError",
    "InvalidPolicySyntax",
    "MissingCredentialsError",
    "MissingRegionError",
    "NetworkError",
    "Principals",
    "RefreshingCredentials",
    "Request",
    "Resources",
    "Response",
    "Rules",
    "ServiceError",
    "ServiceUnparseableError",
    "Session",
    "Statement",
    "StaticCredentials",
    "TosError",
    "Transport",
    "TransportConfig",
    "all_actions",
    "all_principals",
    "background",
    "some_actions",
    "some_principals",
    "some_resources",
    "with_timeout",
]
