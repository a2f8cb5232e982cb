from fastapi import FastAPI
from dotenv import load_dotenv

from vastkmm import __version__
from vastkmm.api.routes import status, verify
from vastkmm.api.middleware import AuthMiddleware
from vastkmm.logging import setup_logger

load_dotenv()
logger = setup_logger("vastkmm.api")

app = FastAPI(title="vastkmm", version=__version__)
app.add_middleware(AuthMiddleware)

app.include_router(status.router)

app.include_router(verify.router)

logger.info("vastkmm status API ready")
