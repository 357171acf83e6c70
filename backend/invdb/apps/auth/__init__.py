"""
Shared-secret login.

Exchanges one of the configured role secrets for a bearer token.
"""
