"""auth/ -- Authentication and access-control package for the game portal.

Layer rule: auth/ imports only stdlib, third-party libraries and core/config.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
