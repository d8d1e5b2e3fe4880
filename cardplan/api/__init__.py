"""
Payment Plan API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import (
    PlanEngineError, ValidationError, NotFoundError, ConflictError,
    InvalidStateError, InfrastructureError
)
from ..logging_config import get_logger
from .plans import router as plans_router


ERROR_STATUS_CODES = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateError, 409),
    (InfrastructureError, 503),
]

logger = get_logger("cardplan.api")


async def plan_engine_error_handler(request: Request, exc: PlanEngineError) -> JSONResponse:
    status_code = next((code for error_cls, code in ERROR_STATUS_CODES if isinstance(exc, error_cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}")
    return JSONResponse(status_code=status_code, content={"detail": exc.reason, "error": exc.kind})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "; ".join(messages), "error": ValidationError.kind}
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Credit Card Payment Plan API",
        description="Installment and revolving repayment plans for credit card expenses",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PlanEngineError, plan_engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.include_router(plans_router, prefix="/plans", tags=["Payment Plans"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "cardplan_api",
            "version": __version__
        }

    return app


app = create_app()
