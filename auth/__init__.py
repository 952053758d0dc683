"""auth/ -- Authentication package: password hashing, tokens, account lifecycle.

Layer rule: auth/ imports from core/, users/ and mail/ plus third-party
libraries. It does NOT import from api/ or storage/.
api/ imports from auth/, not the other way around.
"""
