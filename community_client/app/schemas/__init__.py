"""
Pydantic models for API payloads.

Each domain (users, auth, events, registrations) defines its own models
for request and response bodies.  The models translate between the
backend's camelCase JSON and snake_case Python attributes.
"""
