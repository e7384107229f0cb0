"""Schema-agnostic access to a live API server.

Submodules:
    client -- RESTClient (raw REST over kubernetes_asyncio), DiscoveryClient,
              DynamicClient (generic list/get/create by GroupVersionResource).
    mapper -- RESTMapper and ResourceMapper: kind -> identifier resolution,
              object identity extraction, generic object creation.
"""

from kubesnap.dynamic.client import DiscoveryClient, DynamicClient, RESTClient
from kubesnap.dynamic.mapper import RESTMapper, RESTMapping, ResourceMapper

__all__ = [
    "DiscoveryClient",
    "DynamicClient",
    "RESTClient",
    "RESTMapper",
    "RESTMapping",
    "ResourceMapper",
]
