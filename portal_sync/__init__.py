"""
portal_sync - Portal and password vault synchronization.

Keeps provider portal logins (medical, pet, academic) and their entries in
the shared password vault linked, encrypted and consistent.
"""

__version__ = "0.1.0"
