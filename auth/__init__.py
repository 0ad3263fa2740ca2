"""auth/ -- Credentials, password hashing, identity resolution and access policy.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or moves/.
api/ imports from auth/, not the other way around.
"""
