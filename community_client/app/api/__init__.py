"""
HTTP access to the community backend.

The gateway is the only module that performs network I/O.  It attaches
the bearer token, unwraps the response envelope and converts failures
into the structured errors of :mod:`community_client.app.core.errors`.
"""
