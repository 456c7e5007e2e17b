"""
Pydantic models for SimTrace.

API request/response shapes. No imports from routes or services.
"""

from backend.models.diagnosis import DiagnoseRequest, DiagnosisOut, ErrorOut, EvidenceOut

__all__ = [
    "DiagnoseRequest",
    "DiagnosisOut",
    "EvidenceOut",
    "ErrorOut",
]
