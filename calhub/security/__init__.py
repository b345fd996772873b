# Security Tools Package

"""
Security helpers for calhub.

Components:
- token_crypto.py - AES-256-GCM encryption for cached identity tokens
"""
