"""Admin - HTTP surface for account CRUD and device code sign-in

Components:
    main.py: FastAPI application factory, token middleware, error handlers
    routes/: /admin/accounts and /admin/auth endpoints
    models.py: Request/response models (camelCase on the wire)
    security.py: Shared admin token check
    errors.py: Error category to HTTP status mapping
"""
