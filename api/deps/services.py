# api/deps/services.py
from fastapi import Request

from services.analytics_cache import AnalyticsCache
from services.vapi_client import VapiClient, get_default_vapi_client


def get_vapi_client() -> VapiClient:
    return get_default_vapi_client()


def get_analytics_cache(request: Request) -> AnalyticsCache:
    # Built once in create_app(); one instance per process
    return request.app.state.analytics_cache
