from imagelinker.models.product import Product
from imagelinker.models.image import ProductImage
from imagelinker.models.candidate import ImageCandidate
from imagelinker.models.scan_session import ScanSession
from imagelinker.models.audit_log import AuditLog

__all__ = ["Product", "ProductImage", "ImageCandidate", "ScanSession", "AuditLog"]
