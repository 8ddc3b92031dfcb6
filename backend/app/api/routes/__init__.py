from fastapi import APIRouter

from app.api.routes import alerts, cashflow, forecasts, health, kpis, recommendations, segments, simulation


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(segments.router)
api_router.include_router(cashflow.router)
api_router.include_router(kpis.router)
api_router.include_router(alerts.router)
api_router.include_router(recommendations.router)
api_router.include_router(forecasts.router)
api_router.include_router(simulation.router)
