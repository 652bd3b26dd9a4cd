"""auth/ -- Authentication package for authgate.

Two independent mechanisms live here: Google authorization-code login backed
by an in-memory session store (oauth.py, store.py), and self-contained signed
bearer tokens backed by bcrypt password login (tokens.py, passwords.py).

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or web/. api/ and web/ import from auth/, not
the other way around.
"""
