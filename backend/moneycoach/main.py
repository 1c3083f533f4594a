from fastapi import FastAPI, APIRouter
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import logging

from .config import settings
from .errors import ApiError, api_error_handler, request_validation_error_handler
from .models import create_db_and_tables
from .api import achievements, banking, goals, spending_patterns, stories, suggestions

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# every ApiError becomes {"error": message} with its status code; malformed requests are 400
app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)


@app.on_event("startup")
def on_startup():
    logger.info("Starting %s", settings.PROJECT_NAME)
    create_db_and_tables()


api_router = APIRouter(prefix="/api")
api_router.include_router(achievements.router)
api_router.include_router(banking.router)
api_router.include_router(goals.router)
api_router.include_router(spending_patterns.router)
api_router.include_router(stories.router)
api_router.include_router(suggestions.router)
app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok"}
