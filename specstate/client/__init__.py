"""State store clients."""

from specstate.client.base import StateStoreClient
from specstate.client.http import HttpStateStoreClient
from specstate.client.local import LocalStateStoreClient

__all__ = [
    "StateStoreClient",
    "HttpStateStoreClient",
    "LocalStateStoreClient",
]
