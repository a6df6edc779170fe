"""Remote search service client.

Usage::

    from indexsync.client import SearchServiceClient

    async with SearchServiceClient(["http://localhost:9200"]) as client:
        await client.request("GET", "/")
"""

from indexsync.client.client import SearchServiceClient, ServiceResponse

__all__ = ["SearchServiceClient", "ServiceResponse"]
