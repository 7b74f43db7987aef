"""Content fabric HTTP client."""

from .fabric_client import FabricClient, get_fabric_client, normalize_node_url

__all__ = ["FabricClient", "get_fabric_client", "normalize_node_url"]
