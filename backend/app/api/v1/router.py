"""API v1 router - includes all v1 endpoints."""

from fastapi import APIRouter

from app.api.v1.endpoints import auth, devices, health, mfa, sessions, signup, sso

api_router = APIRouter()

api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(signup.router, prefix="", tags=["Signup"])
api_router.include_router(mfa.router, prefix="", tags=["MFA"])
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(mfa.enrollment_router, prefix="/auth/mfa", tags=["MFA"])
api_router.include_router(devices.router, prefix="/auth/devices", tags=["Devices"])
api_router.include_router(sessions.router, prefix="/auth/sessions", tags=["Sessions"])
api_router.include_router(sso.router, prefix="/auth/sso", tags=["SSO"])
