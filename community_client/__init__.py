"""
Top-level package for the community events client.

Importing :func:`create_client` from here is the usual entry point::

    from community_client import create_client

    client = create_client()
    await client.auth.login("user@example.com", "secret-password")
"""

from .app import CommunityClient, create_client

__all__ = ["CommunityClient", "create_client"]
