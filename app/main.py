from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
import logging
import redis
from sqlalchemy import text
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware
from app.config import settings
from app.database import engine
from app.exceptions import DreamlogError
from app.middleware.rate_limit import limiter
from app.routers import addons, admin, auth, credits, dreams, subscriptions, user, webhooks

# Configurar logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dreamlog API",
    description="API de assinaturas, créditos e interpretações de sonhos",
    version="1.0.0",
    debug=settings.DEBUG,
)

# Adicionar limiter ao app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DreamlogError)
async def dreamlog_error_handler(request: Request, exc: DreamlogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Corpo malformado -> 400 (não 422)"""
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    detail = "Internal server error" if settings.is_production else f"Internal server error: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


# Incluir routers
app.include_router(auth.router, prefix=settings.API_V1_PREFIX, tags=["auth"])
app.include_router(user.router, prefix=settings.API_V1_PREFIX, tags=["account"])
app.include_router(subscriptions.router, prefix=settings.API_V1_PREFIX, tags=["subscriptions"])
app.include_router(credits.router, prefix=settings.API_V1_PREFIX, tags=["credits"])
app.include_router(addons.router, prefix=settings.API_V1_PREFIX, tags=["addons"])
app.include_router(webhooks.router, prefix=settings.API_V1_PREFIX, tags=["webhooks"])
app.include_router(dreams.router, prefix=settings.API_V1_PREFIX, tags=["dreams"])
app.include_router(admin.router, prefix=settings.API_V1_PREFIX, tags=["admin"])


@app.get("/")
async def root():
    return {"message": "Dreamlog API está funcionando!"}


@app.get("/health")
async def health():
    """Health check básico"""
    return {"status": "healthy"}


@app.get("/health/live")
async def health_live():
    """Liveness check - verifica se a aplicação está viva"""
    return {"status": "alive"}


@app.get("/health/ready")
def health_ready():
    """Readiness check - verifica se o banco responde"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": str(e)}
        )


@app.get("/health/detailed")
def health_detailed():
    """Health check detalhado com status de dependências"""
    health_status = {
        "status": "healthy",
        "checks": {}
    }

    # Verificar Redis
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        r.ping()
        health_status["checks"]["redis"] = "ok"
    except redis.RedisError as e:
        health_status["checks"]["redis"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    # Verificar banco de dados
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "ok"
    except Exception as e:
        health_status["checks"]["database"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)
