"""Auth - sign-in flows against external identity providers

Components:
    flows.py: Flow status, per-flow state and device code message parsing
    identity.py: MSAL and google-auth-oauthlib clients
    orchestrator.py: Starts, tracks and cancels per-account flows
"""
