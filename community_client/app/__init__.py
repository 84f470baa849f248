"""
Application package for the community client.

The package is organised like a small service: ``core`` holds settings,
logging, persistence and the error taxonomy, ``schemas`` the pydantic
wire models, ``api`` the HTTP gateway and ``services`` the client-side
logic for authentication, registrations, events and profiles.
``main.create_client`` wires them together.
"""

from .main import CommunityClient, create_client  # noqa: F401
