"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import (admin, auth, products, profile, support,
                                  warranty)

api_router = APIRouter()

# Sign-up, OTP, login, password reset, refresh rotation
api_router.include_router(auth.router)

# Catalog and product registrations
api_router.include_router(products.router)
api_router.include_router(warranty.router)

# Customer support and profile
api_router.include_router(support.router)
api_router.include_router(profile.router)

# Review queue, fraud report, ticket desk, customers
api_router.include_router(admin.router)
