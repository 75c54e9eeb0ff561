"""rbac/ -- Role-based access control: roles, permissions, assignments, policy.

Layer rule: rbac/ imports from core/, db/ and audit/ only. It does NOT import
from api/, web/, auth/, uploads/, or gatekeeper/.
"""
