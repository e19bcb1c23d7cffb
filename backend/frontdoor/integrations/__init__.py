"""Clients for the remote identity and billing providers."""
