from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from gestfiscal.database.database import engine, Base

# Import middleware
from gestfiscal.common.middleware import TenantMiddleware, SecurityHeadersMiddleware
from gestfiscal.common.responses import register_exception_handlers

# Import routers
from gestfiscal.modules.clientes.router import router as clientes_router
from gestfiscal.modules.produtos.router import router as produtos_router
from gestfiscal.modules.stock.router import router as stock_router
from gestfiscal.modules.vendas.router import router as vendas_router
from gestfiscal.modules.documentos_fiscais.router import router as documentos_router
from gestfiscal.modules.dashboard.router import router as dashboard_router

# Import models for table creation
import gestfiscal.modules.clientes.models
import gestfiscal.modules.produtos.models
import gestfiscal.modules.stock.models
import gestfiscal.modules.vendas.models
import gestfiscal.modules.documentos_fiscais.models

from gestfiscal.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="GestFiscal API",
    description="API multi-tenant de faturação e stock (IVA angolano)",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(clientes_router)
app.include_router(produtos_router)
app.include_router(stock_router)
app.include_router(vendas_router)
app.include_router(documentos_router)
app.include_router(dashboard_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "GestFiscal API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("GestFiscal API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("GestFiscal API shutting down...")
