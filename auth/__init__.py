"""
auth — caller authentication for the connection routes.

Provides:
  • Bearer token verification (HMAC-SHA256 signed payloads)
  • ``get_current_user_id`` / ``db_session`` / ``get_settings`` FastAPI dependencies

Signing users in is handled by the dashboard's identity provider.
"""
