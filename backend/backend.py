import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from dotenv import load_dotenv

# Load .env from the script's directory before the roster settings are read.
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(dotenv_path=env_path)

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from roster_module import init_roster_module, register_error_handlers, router as roster_router
from roster_module.config import settings
from roster_module.database import get_db_session

# Configure Logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)


def create_app(init_db: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if init_db:
            logger.info("Initializing roster module...")
            init_roster_module()
            logger.info("Roster module initialized.")
        yield

    app = FastAPI(title="AdiQuan Roster Backend", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(roster_router)

    @app.get("/api/health")
    def health_check(db: Session = Depends(get_db_session)):
        """Health check endpoint to verify the backend can reach its database"""
        try:
            db.execute(text("SELECT 1"))
            db_status = "connected"
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            db_status = f"error: {e.__class__.__name__}"
        return {
            "status": "healthy",
            "message": "Roster backend is running",
            "database": db_status,
            "timestamp": datetime.now().isoformat(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
