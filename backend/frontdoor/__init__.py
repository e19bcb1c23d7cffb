"""
Multi-tenant authorization front door.

Resolves requests to configured tenant applications, runs the delegated
OAuth2/PKCE login against the identity provider, and decides field-level
user data mutations using identity plus billing subscription status.
"""

__version__ = "1.0.0"
