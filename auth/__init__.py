"""auth/ -- Authentication and authorization package for Saiqa.

Layer rule: auth/ imports from core/ and audit/ plus third-party libraries.
It does NOT import from api/ or org/.
api/ imports from auth/, not the other way around.
"""
