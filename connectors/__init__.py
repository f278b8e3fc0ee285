"""
connectors — project ↔ platform connections.

Provides:
  • A closed ``Platform`` enum and a registry with one connector per OAuth provider
  • Authorization start / callback completion with server-side pending state
  • Per-project connection storage with Fernet-encrypted token refs
  • Silent token refresh, WordPress application-password linking
  • Diagnostics for operators

Each OAuth provider is a subclass of BaseConnector (see ``providers.py``).
"""
