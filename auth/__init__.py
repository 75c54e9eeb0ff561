"""auth/ -- Authentication for the starter kit: subjects, sessions, OAuth.

Layer rule: auth/ does NOT import from api/, web/, uploads/, or gatekeeper/.
api/ and web/ import from auth/, not the other way around. Only
auth/dependencies.py reaches into rbac/ and audit/, to check and record
permission decisions.
"""
