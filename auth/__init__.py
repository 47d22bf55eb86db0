"""auth/ -- Credential hashing, token signing, stores and the auth service.

Layer rule: auth/ imports from core/ and db/ plus third-party libraries.
Transport code (HTTP adapters, the CLI) imports from auth/, never the reverse.
"""
