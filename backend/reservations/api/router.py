from fastapi import APIRouter

from reservations.api.routes import health, flights, purchases

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])  # GET /
api_router.include_router(flights.router, prefix="/flights", tags=["flights"])  # GET /, GET /{id}
api_router.include_router(purchases.router, prefix="/purchases", tags=["purchases"])  # POST /, GET|DELETE /{ticket_code}
