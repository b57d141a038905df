"""auth/ -- Authentication core for TokenGate.

Token issuance and verification, the user and refresh-token stores, the
registration/login/refresh/logout service functions and the expiry sweeper.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or client/.
api/ and client/ import from auth/, not the other way around.
"""
