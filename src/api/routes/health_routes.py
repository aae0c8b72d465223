"""
Health check route - public, no API key required.
"""
from fastapi import APIRouter

router = APIRouter()


@router.get(
    "",
    summary="System health check",
)
async def health_check():
    """
    Check system health status.

    Reports whether configuration loads and which upstreams are configured.
    """
    health = {
        "status": "healthy",
        "service": "Menu Pal API",
        "version": "1.0.0",
        "components": {}
    }

    try:
        import config
        health["version"] = config.SERVICE_VERSION
        health["components"]["config"] = "ok"
        health["components"]["rates"] = "configured" if config.RATES_GLOBAL_URL else "unconfigured"
        health["components"]["entitlement"] = "configured" if config.ENTITLEMENT_URL else "unconfigured"
    except Exception as e:
        health["components"]["config"] = f"error: {str(e)}"
        health["status"] = "degraded"

    try:
        import google.generativeai  # noqa: F401
        health["components"]["gemini_sdk"] = "available"
    except ImportError:
        health["components"]["gemini_sdk"] = "unavailable"
        health["status"] = "degraded"

    return health
