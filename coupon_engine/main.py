
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from coupon_engine.config import CORS_ORIGINS
from coupon_engine.database import Base, engine
from coupon_engine.logging_config import get_logger
from coupon_engine.models import coupon, order  # noqa: F401  (register tables)
from coupon_engine.routers import coupons as coupons_router
from coupon_engine.routers import admin_coupons as admin_coupons_router

logger = get_logger("main")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Coupon Engine API",
    description="Validates storefront coupons against carts and user history and computes their discounts",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(coupons_router.router)
app.include_router(admin_coupons_router.router)


@app.get("/health")
def health():
    return {"status": "healthy"}


# Proper JSON error with correct status code
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"status_code": exc.status_code, "detail": exc.detail}},
    )


# Storage failures are system errors, never a coupon rejection
@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": {"status_code": 500, "detail": {
            "message": "Unable to process coupon request. Please try again.",
            "code": "SERVER_ERROR",
        }}},
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("coupon_engine.main:app", host="0.0.0.0", port=8000, reload=True)
