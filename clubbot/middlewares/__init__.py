from clubbot.middlewares.db_middleware import DatabaseMiddleware
from clubbot.middlewares.auth_middleware import AdminMiddleware, IsAdmin
from clubbot.middlewares.projection_middleware import ProjectionMiddleware

__all__ = ["DatabaseMiddleware", "AdminMiddleware", "IsAdmin", "ProjectionMiddleware"]
