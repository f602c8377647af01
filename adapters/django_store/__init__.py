"""
Bazaar Django Store
=====================
ORM-backed implementations of the engine store protocols.
"""
