"""Authentication and authorization.

Learn: a single scheme, email/password → signed JWT access/refresh tokens.
The access token carries sub (user id), email and role. Route handlers
still reload the user row so a suspension or role change takes effect
immediately instead of waiting for the token to expire.
"""
