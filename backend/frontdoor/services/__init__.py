"""
Application services: provisioning, user data and the product catalog.
"""
