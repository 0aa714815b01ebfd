# Services Module
from services.esewa_service import esewa_service, CallbackDecodeError
from services.probe_service import probe_url, probe_urls

__all__ = ["esewa_service", "CallbackDecodeError", "probe_url", "probe_urls"]
