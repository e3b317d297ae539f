# --- imports (top of backend/app.py) ---
import os, json
import sys
import logging
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Resolve paths early so env vars are available before importing the app modules
BASE_DIR = Path(__file__).resolve().parent
ROOT_DIR = BASE_DIR.parent
ENV_PATH = BASE_DIR / ".env"

if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

load_dotenv(ENV_PATH, override=False)

from backend.models import init_db
from backend.middleware.tracing import TRACE_ID_CTX_VAR, TracingMiddleware
from backend.routes import (
    admin_routes,
    item_aliases_routes,
    normalize_routes,
    standard_items_routes,
    test_results_routes,
    user_data_routes,
)
from backend.utils.exceptions import (
    NormalizationError,
    handle_http_exception,
    handle_normalization_error,
    handle_request_validation_error,
    handle_unhandled_exception,
)

LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
CORS_ORIGINS = [
    o.strip()
    for o in (os.getenv("CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]


# --- logging setup ---
class JsonFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "function": record.funcName,
            "message": record.getMessage(),
            "trace_id": TRACE_ID_CTX_VAR.get() or None,
        }
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("petlab")
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    return logger


logger = configure_logging()

# --- app & router setup ---
app = FastAPI(title="PetLab Backend", version="0.1.0")

app.add_middleware(TracingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(NormalizationError, handle_normalization_error)
app.add_exception_handler(HTTPException, handle_http_exception)
app.add_exception_handler(RequestValidationError, handle_request_validation_error)
app.add_exception_handler(Exception, handle_unhandled_exception)


@app.on_event("startup")
def _init_db():
    init_db()


app.include_router(test_results_routes.router)
app.include_router(normalize_routes.router)
app.include_router(standard_items_routes.router)
app.include_router(item_aliases_routes.router)
app.include_router(item_aliases_routes.mappings_router)
app.include_router(admin_routes.router)
app.include_router(user_data_routes.router)


@app.get("/api/health")
def health():
    return {"status": "ok"}
