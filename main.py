"""
Entry point for the band exam session service.

Run with:
    uvicorn main:app --reload --port 8100
    python main.py
"""
import uvicorn

from bandexam.api.main import app
from config import get_settings

settings = get_settings()

if __name__ == "__main__":
    uvicorn.run(
        "bandexam.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
