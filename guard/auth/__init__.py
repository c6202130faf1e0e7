"""
Credential helpers for the portal guard.

Design goals:
- Stateless: the session token is issued by the customer portal, never by us.
- Fail closed: any credential problem means "anonymous".
- Cookie-based, no Authorization header support.
"""
