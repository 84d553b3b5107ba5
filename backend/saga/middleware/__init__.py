"""
Heimursaga API — Middleware Package
=====================================

Middleware Chain (request direction):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

Bot detection is not middleware: it is a route dependency
(`BotDetectionGuard`) applied to auth and checkout endpoints only.
"""
