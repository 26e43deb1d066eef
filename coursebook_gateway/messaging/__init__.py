"""
Broker messaging — outbound command publishing and the completion consumer.

Commands go to one exchange with a routing key per downstream domain
(document store, counters). Completions come back on a reply queue.
"""

from coursebook_gateway.messaging.publisher import OutboundPublisher

__all__ = ["OutboundPublisher"]
