# API Routers
from bandexam.api.routers import review_router, submission_router

__all__ = ["review_router", "submission_router"]
