"""auth/ -- Owner accounts: registration, bcrypt hashing, login checks.

Layer rule: auth/ imports only stdlib, third-party libraries, core.config and core.db.
api/ imports from auth/, not the other way around.
"""
