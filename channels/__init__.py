"""Outbound transports for sent messages."""
from channels.webhook import WebhookClient

__all__ = ["WebhookClient"]
