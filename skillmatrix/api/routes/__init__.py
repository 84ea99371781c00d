from fastapi import FastAPI

from . import assessments, cycles, health, teams


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(assessments.router)
    app.include_router(cycles.router)
    app.include_router(teams.router)
