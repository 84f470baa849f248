"""
Service layer.

Each service encapsulates the client-side logic for one domain and talks
to the backend only through the API gateway.  Services receive their
collaborators (gateway, credential store, settings) explicitly; there is
no module-level state.
"""
