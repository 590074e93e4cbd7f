import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.core import config
from backend.database import Base, SessionLocal, engine, ensure_booking_indexes
from backend import models  # noqa: F401  registers every table on Base.metadata
from backend.routes import (
    appointment_routes,
    auth_routes,
    patient_routes,
    settings_routes,
    stats_routes,
    timeslot_routes,
    treatment_routes,
    user_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Clinic Management API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={'error': exc.detail},
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = '.'.join(str(part) for part in first.get('loc', ()) if part not in ('body', 'query', 'path'))
        message = f"{field}: {first.get('msg')}" if field else str(first.get('msg'))
    else:
        message = 'Invalid request'
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'error': message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': 'Internal server error'},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_indexes()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Clinic API Running'}


@app.get('/health')
def health():
    checks = {'database': 'healthy'}
    db = SessionLocal()
    try:
        db.execute(text('SELECT 1'))
    except SQLAlchemyError:
        logger.exception('Database health check failed')
        checks['database'] = 'unhealthy'
    finally:
        db.close()

    healthy = checks['database'] == 'healthy'
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            'status': 'healthy' if healthy else 'degraded',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'service': 'clinic-api',
            'checks': checks,
        },
    )


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(user_routes.router, prefix='/users')
app.include_router(patient_routes.router, prefix='/patients')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(treatment_routes.router, prefix='/treatments')
app.include_router(timeslot_routes.router, prefix='/timeslots')
app.include_router(settings_routes.router, prefix='/settings')
app.include_router(stats_routes.router, prefix='/admin/stats')
