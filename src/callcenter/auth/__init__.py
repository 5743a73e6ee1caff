"""
Authentication collaborator.

Resolves an already-verified caller identity (user id, role, extension) from a
Bearer token. The call core only consumes this identity.
"""
