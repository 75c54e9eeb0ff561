"""gatekeeper/ -- Request gating: security headers, rate limiting, route classification.

Layer rule: gatekeeper/ imports only stdlib + third-party libraries. It does
NOT import from api/, web/, auth/, rbac/, audit/, or uploads/.
"""
