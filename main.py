import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import loan_manager.models  # ensure models are registered
from loan_manager.core.config import CORS_ORIGINS, LOG_LEVEL
from loan_manager.core.errors import install_exception_handlers
from loan_manager.utils.database import engine, Base

from loan_manager.routers import (
    loans_router,
    repayments_router,
    transactions_router,
    settings_router,
    notifications_router,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("loan_manager")

app = FastAPI(title="Loan Manager API", version="1.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)

# Routers
app.include_router(loans_router.router, prefix="/api")
app.include_router(repayments_router.router, prefix="/api")
app.include_router(transactions_router.router, prefix="/api")
app.include_router(settings_router.router, prefix="/api")
app.include_router(notifications_router.router, prefix="/api")


@app.on_event("startup")
def on_startup():
    # DEV ONLY: use migrations for shared databases
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


@app.get("/")
def root():
    return {"message": "Loan Manager Backend is running!!"}
