# Middleware package init
"""
Bird Feed Backend — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit: rejects over-budget clients before any work is done
    2. Request ID: correlation id for logs, error bodies and the response
    3. Logging:    one access line per request, with the request id
    4. GZip:       compresses larger JSON bodies
    5. CORS:       FastAPI's CORSMiddleware (handles preflight)

Responses pass back through the chain in reverse, so the request id and
rate-limit headers are set on every response.
"""
