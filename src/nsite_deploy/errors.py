"""Exception taxonomy for deploy runs.

Only two conditions ever surface as run-level failures: the local root
directory cannot be read (``LocalReadFailure``) and a stage that needs
endpoints has none (``NoEndpointsConfigured``).  Everything else is
caught at file or endpoint granularity and folded into the results.
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for all deploy errors."""


class LocalReadFailure(DeployError):
    """A local file or directory could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class RemoteFetchFailure(DeployError):
    """Remote state could not be fetched from any event endpoint."""


class EndpointError(DeployError):
    """An endpoint call failed.

    Attributes:
        endpoint_id: Identifier of the endpoint that failed.
    """

    def __init__(self, endpoint_id: str, message: str) -> None:
        self.endpoint_id = endpoint_id
        super().__init__(f"{endpoint_id}: {message}")


class EndpointNetworkFailure(EndpointError):
    """Connection-level failure talking to an endpoint."""


class EndpointRejected(EndpointError):
    """The endpoint refused the request (auth, quota, policy)."""


class EndpointTimeout(EndpointError):
    """The endpoint did not answer within the request timeout."""


class NoEndpointsConfigured(DeployError):
    """A stage that requires endpoints was invoked with none."""

    def __init__(self, stage: str, kind: str = "endpoints") -> None:
        self.stage = stage
        self.kind = kind
        super().__init__(f"No {kind} configured for {stage}")


class SignerUnavailable(DeployError):
    """The signer could not produce a public key or signature."""
