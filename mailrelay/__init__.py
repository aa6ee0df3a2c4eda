"""
Mail Relay - Gmail push-notification relay.

Receives Gmail Pub/Sub webhooks, buffers them in a short-lived event store,
and streams new-mail events to browser sessions over Server-Sent Events.
"""

__version__ = "0.1.0"
