import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import crud, errors
from .config import ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD, CORS_ORIGINS, setup_logging
from .database import SessionLocal, engine
from .models import Base
from .routers import admin_router, auth_router, cart_router, order_router, payment_router, product_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Jewellery Store API",
    description="Catalog, cart, checkout and Stripe payments for an online jewellery shop",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create database tables
Base.metadata.create_all(bind=engine)

app.include_router(auth_router.router)
app.include_router(product_router.router)
app.include_router(cart_router.router)
app.include_router(order_router.router)
app.include_router(payment_router.router)
app.include_router(admin_router.router)


@app.exception_handler(errors.StoreError)
async def store_error_handler(request: Request, exc: errors.StoreError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    err = errors.PersistenceError()
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


def init_admin_user():
    if not (ADMIN_EMAIL and ADMIN_PASSWORD):
        return

    db = SessionLocal()
    try:
        admin_user = crud.get_user_by_email(db, ADMIN_EMAIL)
        if not admin_user:
            crud.create_user(db, name=ADMIN_NAME, email=ADMIN_EMAIL, password=ADMIN_PASSWORD, is_admin=True)
            logger.info("Admin user %s created", ADMIN_EMAIL)
        elif not admin_user.is_admin:
            admin_user.is_admin = True
            db.commit()
            logger.info("Admin user %s updated", ADMIN_EMAIL)
    except (errors.StoreError, SQLAlchemyError):
        logger.exception("Error initializing admin user")
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_admin_user()


@app.get("/")
def root():
    return {"service": "Jewellery Store API", "status": "running", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
