"""
MCT API — Routes Package
==========================

Route Inventory:
    - health.py:  GET /health          (liveness)
                  GET /health/ready    (PostgreSQL + Redis readiness)
    - api.py:     GET /api/v1/ping     (API round-trip check)

Routes are THIN: they borrow pools through dependencies in database.py
and return ApiResponse envelopes. Failures are raised as AppError and
rendered by middleware/error_handler.py.
"""
