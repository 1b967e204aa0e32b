"""Authentication.

Learn: Users sign up with email/password and receive JWT access/refresh
tokens. Every protected route and the WebSocket endpoint resolve the
bearer token to a CurrentIdentity (just the user id); authorization
(who may close a poll, kick a participant...) is the services' job.
"""
