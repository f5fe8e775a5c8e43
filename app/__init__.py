from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

load_dotenv()

from app.core.config import Config
from app.core.logging_config import setup_logging
from app.db.database import init_db
from app.exceptions import create_exception_handler, CategoryIntegrityError
from app.routers.admin import router as admin_router
from app.routers.categories import router as categories_router

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


api_version = "v1"
swagger_docs_url = f"/api/{api_version}/docs"
redoc_docs_url = f"/api/{api_version}/redoc"
openapi_url = f"/api/{api_version}/openapi.json"

app = FastAPI(
    docs_url=swagger_docs_url,
    redoc_url=redoc_docs_url,
    openapi_url=openapi_url,
    title="Storefront Catalog API",
    description="Category hierarchy management for the storefront catalog.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.cors_origins_list,
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'],
    allow_headers=["*"],
)

# Register endpoints
app.include_router(admin_router, prefix=f'/api/{api_version}/admin', tags=["Admin"])
app.include_router(categories_router, prefix=f'/api/{api_version}/categories', tags=["Categories"])

# Add a root endpoint for health check
@app.get("/")
async def root():
    return {
        "message": "Storefront Catalog API",
        "version": "1.0.0",
        "docs": swagger_docs_url,
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": Config.ENVIRONMENT}

# Register custom exceptions

# A broken hierarchy is an internal fault; the details stay in the logs
app.add_exception_handler(CategoryIntegrityError, create_exception_handler(500, "Internal catalog error"))
