import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_engine.application import configure_payroll_service
from payroll_engine.core.logging import configure_logging, get_logger
from payroll_engine.infrastructure import (
    InMemoryPayrollRepository,
    InMemoryQuarantineStore,
    JsonQuarantineStore,
    TimekeepingClient,
    configure_timekeeping_source,
)
from payroll_engine.infrastructure.timekeeping import DEFAULT_BASE_URL
from payroll_engine.routes import attendance, calc, employees, quarantine


def create_app() -> FastAPI:
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    logger = get_logger(__name__)
    app = FastAPI(title="Payroll Engine API", version="0.1.0")

    company = os.getenv("TIMEKEEPING_COMPANY")
    api_key = os.getenv("TIMEKEEPING_API_KEY")
    if company and api_key:
        base_url = os.getenv("TIMEKEEPING_BASE_URL") or DEFAULT_BASE_URL
        configure_timekeeping_source(TimekeepingClient(base_url=base_url, company=company, api_key=api_key))
        logger.info("app.timekeeping_configured", base_url=base_url, company=company)

    store_path = os.getenv("QUARANTINE_STORE_PATH")
    quarantine_store = JsonQuarantineStore(store_path) if store_path else InMemoryQuarantineStore()
    configure_payroll_service(
        InMemoryPayrollRepository(),
        quarantine_store,
        rates_version=os.getenv("PAYROLL_RATES_VERSION") or None,
    )

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(employees.router, prefix="/api")
    app.include_router(attendance.router, prefix="/api")
    app.include_router(quarantine.router, prefix="/api")
    app.include_router(calc.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Payroll Engine API",
                "docs": "/docs",
                "health": "/api/months",
            }
        )

    return app


app = create_app()
