# Middleware package init
"""
Alter Compatibility Backend — Middleware Package
=================================================

Middleware Chain (execution order on the way in):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit first: reject abusive callers before an LLM call is made
    2. Request ID: correlation ID for every log line of the request
    3. Logging: access line with status and duration

Responses travel the chain in reverse, so X-Request-ID is set on every
response and the logged duration covers the whole handler.
"""
