"""
MCT API — Application Package
===============================

The request-handling core of the MCT HTTP API:

    ┌─────────────────────────────────────┐
    │   Middleware Chain (middleware/)    │  ← logging → recovery → CORS
    ├─────────────────────────────────────┤
    │   Routes (routes/)                  │  ← thin handlers, envelopes out
    ├─────────────────────────────────────┤
    │   Envelope & Errors (schemas/,      │  ← uniform wire contract
    │   exceptions.py)                    │
    ├─────────────────────────────────────┤
    │   Resource Pools (database.py)      │  ← PostgreSQL + Redis, shared
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
