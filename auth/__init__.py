"""auth/ -- Request identity and access-control package for CarValue.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or reports/.
api/ and reports/ import from auth/, not the other way around.
"""
