"""
HTTP clients for the downstream stores (plain request/response, no broker).
"""

from coursebook_gateway.clients.counters import CountersClient, CounterReply
from coursebook_gateway.clients.document_store import DocumentStoreClient, StoreReply

__all__ = ["CounterReply", "CountersClient", "DocumentStoreClient", "StoreReply"]
