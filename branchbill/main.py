from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from branchbill.database.database import Base, get_engine

# Import routers
from branchbill.modules.currencies.router import router as currencies_router
from branchbill.modules.documents.invoices_router import router as invoices_router
from branchbill.modules.documents.quotations_router import router as quotations_router
from branchbill.modules.documents.router import router as documents_router
from branchbill.modules.portal.router import router as portal_router

# Import models for table creation
import branchbill.modules.branches.models
import branchbill.modules.customers.models
import branchbill.modules.documents.models

from branchbill.common.exceptions import BillingError
from branchbill.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Branch Billing API",
    description="Invoices and quotations for multi-branch businesses, built with FastAPI and SQLAlchemy",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(invoices_router)
app.include_router(quotations_router)
app.include_router(documents_router)
app.include_router(currencies_router)
app.include_router(portal_router)


@app.get("/")
async def read_root():
    return {
        "message": "Branch Billing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Branch Billing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=get_engine())


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Branch Billing API shutting down...")
