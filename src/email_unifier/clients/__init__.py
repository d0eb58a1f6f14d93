"""Provider transports that return native payload pages."""

from email_unifier.clients.gmail import GmailClient
from email_unifier.clients.inbound import InboundQueueClient, unwrap_notification

__all__ = ["GmailClient", "InboundQueueClient", "unwrap_notification"]
