"""auth/ -- Authentication core for the Homi backend.

passwords.py       PBKDF2 password records
tokens.py          compact HS256 access/refresh tokens
refresh_tokens.py  per-user hashed refresh-token records (issue/rotate/revoke/prune)
store.py           SQLAlchemy Core UserStore with optimistic version checks
service.py         register / login / refresh / logout orchestration
dependencies.py    bearer authentication + FastAPI Depends() helpers

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
