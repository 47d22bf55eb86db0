"""db/ -- Connection pool, schema and storage-error mapping for authcore.

Layer rule: db/ imports only core/ and third-party libraries.
It does NOT import from auth/. auth/ stores import from db/, not the other way around.
"""
