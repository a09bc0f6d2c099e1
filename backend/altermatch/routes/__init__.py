# Routes package init
"""
Alter Compatibility Backend — API Routes Package
=================================================

Route Inventory:
    - compatibility.py: /api/compatibility/*  (scoring and cache management)
    - health.py:        GET /health           (service health check)

Routes stay thin: parse the request, call the service, return the model.
Business rules live in services; error mapping lives in main.py.
"""
