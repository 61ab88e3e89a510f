"""API package exports."""
from . import routes_admin, routes_auth, routes_chats, routes_rooms, routes_users

__all__ = [
    "routes_admin",
    "routes_auth",
    "routes_chats",
    "routes_rooms",
    "routes_users",
]
