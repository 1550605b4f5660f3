from matchday.routes.api import router

__all__ = ["router"]
