"""Transform-and-reconcile engine.

Matches ads to CRM opportunities by UTM, derives funnel metrics, and
consolidates stored records for signed export.
"""
from .consolidate import consolidate
from .exceptions import ConfigurationError, ETLError, ExportError, PayloadError
from .exporter import Exporter, RecordSigner
from .matcher import build_index, resolve
from .metrics import compute
from .service import ETLService
from .transform import transform, transform_payloads

__all__ = [
    "ETLService",
    "ETLError",
    "ConfigurationError",
    "ExportError",
    "PayloadError",
    "Exporter",
    "RecordSigner",
    "build_index",
    "compute",
    "consolidate",
    "resolve",
    "transform",
    "transform_payloads",
]
