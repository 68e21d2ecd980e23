from .chat_routes import init_chat_routes

__all__ = ["init_chat_routes"]
