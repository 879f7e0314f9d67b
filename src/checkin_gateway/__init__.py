"""Async client for the guest check-in backend."""

from .backend_client import CheckinClient, get_client, close_client

__all__ = ['CheckinClient', 'get_client', 'close_client']
