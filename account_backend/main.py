"""Bundled record store server: ``uvicorn account_backend.main:app --port 3001``."""
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from account_backend.app.routes.records import router as records_router
from account_backend.app.services.records import get_record_file_store


load_dotenv()

logger = logging.getLogger("records")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "RECORD_STORE_CORS_ORIGINS",
        "http://localhost:8080,http://localhost:3000,http://127.0.0.1:8080",
    ).split(",")
    if origin.strip()
]

app = FastAPI(title="Account Record Store")

# Frontend dev server origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records_router)


@app.on_event("startup")
def prepare_record_files() -> None:
    store = get_record_file_store()
    logger.info("Serving record files from %s", store.directory)
