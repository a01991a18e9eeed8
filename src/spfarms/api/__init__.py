"""REST client for the SPFarms backend."""

from .client import API_PREFIX, HarvestApiClient, unwrap, unwrap_many

__all__ = ["API_PREFIX", "HarvestApiClient", "unwrap", "unwrap_many"]
