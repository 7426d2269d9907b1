"""auth/ -- Accounts, credentials and the login pipeline for bsa-bridge.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, importer/, lms/, or sync/.
api/, importer/ and sync/ import from auth/, not the other way around.
"""
