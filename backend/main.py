from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from config import settings
from database import init_db, async_session_maker
from models import User
from schemas import UserResponse
from auth import get_current_active_user
from errors import AppError
from hotel import router as hotel_router
from room_types import router as room_types_router
from rooms import router as rooms_router
from clients import router as clients_router
from reservations import router as reservations_router
from charges import router as charges_router
from charge_concepts import router as charge_concepts_router
from payments import router as payments_router
from housekeeping import router as housekeeping_router
from maintenance import router as maintenance_router
from products import router as products_router
from saas_admin import router as saas_admin_router

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

# Setup logging
logger = logging.getLogger(__name__)

# Strip whitespace from each origin to prevent configuration errors
CORS_ORIGINS = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,  # Cache preflight responses for 1 hour
)

# ==================== CUSTOM EXCEPTION HANDLERS ====================

def with_cors(request: Request, response: JSONResponse) -> JSONResponse:
    """
    Add CORS headers to error responses.

    Errors raised in dependencies (like the subscription gate) would otherwise
    reach the browser without CORS headers and be blocked.
    """
    origin = request.headers.get('origin')
    if origin and origin in CORS_ORIGINS:
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Credentials'] = 'true'
        response.headers['Access-Control-Allow-Methods'] = '*'
        response.headers['Access-Control-Allow-Headers'] = '*'
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Business and access errors: {"error": message, **context}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    return with_cors(request, response)


@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )
    return with_cors(request, response)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 listing the offending fields"""
    fields = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or str(err.get("loc", ("",))[0]),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    response = JSONResponse(status_code=400, content={"error": "Invalid request data", "fields": fields})
    return with_cors(request, response)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler for unexpected errors.
    Ensures CORS headers are present even on 500 errors.
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)

    content = {"error": "Internal server error"}
    if settings.DEBUG:
        content["detail"] = str(exc)
    return with_cors(request, JSONResponse(status_code=500, content=content))

# ==================== END EXCEPTION HANDLERS ====================

for hotel_scoped_router in (
    hotel_router,
    room_types_router,
    rooms_router,
    clients_router,
    reservations_router,
    charges_router,
    charge_concepts_router,
    payments_router,
    housekeeping_router,
    maintenance_router,
    products_router,
):
    app.include_router(hotel_scoped_router)

# Platform routes, not gated by a hotel subscription
app.include_router(saas_admin_router)


@app.on_event("startup")
async def startup_event():
    """Create the schema and optionally load the demo hotel"""
    logger.info(f"Starting {settings.APP_NAME} (debug={settings.DEBUG})")

    try:
        await init_db()
    except ConnectionRefusedError:
        logger.error("Database connection refused; check DATABASE_URL and that the server is reachable")
        raise

    if settings.SEED_DEMO_DATA:
        from seed_data import seed_demo_data
        async with async_session_maker() as db:
            await seed_demo_data(db)


# ==================== AUTH ====================

@app.get("/api/auth/me", response_model=UserResponse)
async def read_current_user(current_user: User = Depends(get_current_active_user)):
    """The user behind the bearer token"""
    return current_user


# ==================== HEALTH CHECK ====================

@app.get("/api/health")
async def health_check():
    """Health check endpoint for load balancers"""
    return {"status": "healthy", "service": "hotel-pms-api"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
