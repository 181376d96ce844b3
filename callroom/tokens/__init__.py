"""Credential service client."""

from callroom.tokens.client import TokenBrokerClient

__all__ = ["TokenBrokerClient"]
