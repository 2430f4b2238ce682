"""
Service layer for the contact scan feature.
"""

from .scan_service import ContactScanService, contact_scan_service

__all__ = ["ContactScanService", "contact_scan_service"]
