"""auth/ -- Authentication and the role gate for RepoHub.

Layer rule: auth/ imports only core/ + third-party libraries.
It does NOT import from api/ or hub/.
api/ and hub/ import from auth/, not the other way around.
"""
