"""
Security and compliance helpers for models.

This module provides:
- Column compliance metadata (PII classification, retention)
- Masking helpers for identity fields
- The ``immutable_record`` decorator for append-only / financial tables
"""

from sqlalchemy import event
from enum import Enum as PyEnum
from typing import Any, Dict, Optional


# =======================================
# Compliance Enums
# =======================================


class DataSensitivity(str, PyEnum):
    """Data sensitivity classification for SOC2 compliance."""

    PUBLIC = "public"  # can be shared freely
    INTERNAL = "internal"  # only used internally
    CONFIDENTIAL = "confidential"  # restricted access
    RESTRICTED = "restricted"  # highly sensitive (PII, financial data)


class GDPRDataCategory(str, PyEnum):
    """Categories of personal data under GDPR."""

    IDENTITY = "identity"  # Name, email, phone
    FINANCIAL = "financial"  # Payment info, salary
    PROFESSIONAL = "professional"  # Work history, skills


class DataRetentionPeriod(str, PyEnum):
    """Data retention periods for GDPR compliance."""

    ONE_YEAR = "1_year"
    THREE_YEARS = "3_years"
    SEVEN_YEARS = "7_years"
    INDEFINITE = "indefinite"  # until user requests deletion


# =======================================
# Column Security Metadata
# =======================================


def compliance_column(
    sensitivity: DataSensitivity = DataSensitivity.CONFIDENTIAL,
    pii: bool = False,
    gdpr_category: Optional[GDPRDataCategory] = None,
    mask_in_logs: bool = True,
    retention_period: Optional[DataRetentionPeriod] = None,
    **kwargs,
) -> Dict[str, Any]:
    """
    Mark a column with compliance metadata.

    Usage:
        email: Mapped[str] = mapped_column(
            String(255),
            info=compliance_column(
                sensitivity=DataSensitivity.CONFIDENTIAL,
                pii=True,
                gdpr_category=GDPRDataCategory.IDENTITY,
            ),
        )
    """
    return {
        "sensitivity": sensitivity.value,
        "mask_in_logs": mask_in_logs,
        "pii": pii,
        "gdpr_category": gdpr_category.value if gdpr_category else None,
        "retention_period": retention_period.value if retention_period else None,
        **kwargs,
    }


# =======================================
# Data Masking Utilities
# =======================================

MASKED_EMAIL = "hidden@splits.network"


def initials(full_name: Optional[str]) -> str:
    """
    Reduce a name to dotted initials: "Jane Doe" -> "J.D.".

    Args:
        full_name: The name to reduce

    Returns:
        Initials, or an empty string for blank names
    """
    if not full_name:
        return ""
    parts = [part for part in full_name.split() if part]
    return "".join(f"{part[0].upper()}." for part in parts)


# =======================================
# Immutable Record Decorator
# =======================================


class ImmutableRecordError(Exception):
    """Raised when a flush tries to modify or delete an immutable row."""


def immutable_record(model_class):
    """
    Decorator that rejects UPDATE and DELETE flushes for a mapped class.

    Corrections to such records are made by writing a new row.
    """

    def _reject_update(mapper, connection, target):
        raise ImmutableRecordError(
            f"{model_class.__name__} {getattr(target, 'id', None)} is immutable"
        )

    def _reject_delete(mapper, connection, target):
        raise ImmutableRecordError(
            f"{model_class.__name__} {getattr(target, 'id', None)} cannot be deleted"
        )

    event.listen(model_class, "before_update", _reject_update)
    event.listen(model_class, "before_delete", _reject_delete)
    model_class.__immutable__ = True
    return model_class
