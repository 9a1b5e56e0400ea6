"""
forcelink: async client for a CRM platform's REST and bulk APIs.

The request pipeline authenticates, retries transient failures with
jittered backoff, refreshes expired sessions once per call, and drives
bulk jobs through their lifecycle. Every blocking operation accepts a
CancellationToken.
"""

from forcelink.auth import Credential, CredentialProvider, build_strategy
from forcelink.bulk import BulkJobController, Job, JobSpec, JobState, Operation
from forcelink.client import ForceClient
from forcelink.config import ClientConfig, load_config
from forcelink.errors import (
    APIError,
    AuthError,
    CancellationError,
    ConfigurationError,
    ForceLinkError,
    JobStateError,
    RetryExhaustedError,
    SessionExpiredError,
    TransportError,
)
from forcelink.executor import RequestExecutor
from forcelink.resilience import NEVER, CancellationToken, RetryPolicy
from forcelink.transport import AiohttpTransport

__version__ = "0.1.0"

__all__ = [
    "ForceClient",
    "ClientConfig",
    "load_config",
    "Credential",
    "CredentialProvider",
    "build_strategy",
    "RequestExecutor",
    "AiohttpTransport",
    "RetryPolicy",
    "CancellationToken",
    "NEVER",
    "BulkJobController",
    "Job",
    "JobSpec",
    "JobState",
    "Operation",
    "ForceLinkError",
    "AuthError",
    "SessionExpiredError",
    "APIError",
    "TransportError",
    "CancellationError",
    "RetryExhaustedError",
    "JobStateError",
    "ConfigurationError",
]
