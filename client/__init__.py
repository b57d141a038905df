"""client/ -- Python client for the TokenGate HTTP API.

Layer rule: client/ talks to the server over HTTP only. It does NOT import
from api/, auth/ or core/.
"""
