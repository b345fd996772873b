"""calhub Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - accounts/: models, validation, configuration store, credential stores
  - auth/: flow state, device code parsing, orchestrator
  - security/: token encryption
- integration/: Admin API tests through FastAPI's TestClient

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/accounts/

    # With coverage
    pytest --cov=calhub --cov-report=term-missing
"""
