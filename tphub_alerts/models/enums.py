"""
Enumeration definitions for the TPHub Alerts backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models and FastAPI responses.
"""

from enum import Enum


class AlertCategory(str, Enum):
    """
    Metric families watched by the daily alerts.

    The declaration order is the processing and display order used across
    the pipeline: orders, reviews, ads, promos.
    """
    ORDERS = "orders"
    REVIEWS = "reviews"
    ADS = "ads"
    PROMOS = "promos"


class AlertChannel(str, Enum):
    """Delivery channels a consultant can enable."""
    SLACK = "slack"
    EMAIL = "email"


class StaffRole(str, Enum):
    """
    Profile roles that can receive alerts.

    Any other role stored in `profiles` (e.g. client users) is excluded
    from consultant assignment.
    """
    CONSULTANT = "consultant"
    MANAGER = "manager"
    ADMIN = "admin"


class Severity(str, Enum):
    """
    Three-tier severity ladder derived from the urgency score.

    - CRITICO: score >= 60
    - URGENTE: 30 <= score < 60
    - ATENCION: score < 30
    """
    CRITICO = "CRITICO"
    URGENTE = "URGENTE"
    ATENCION = "ATENCION"


class ObservationMode(str, Enum):
    """
    Where the per-category observed value comes from when scoring.

    - SIMULATION: deterministic pseudo-values for previews and test sends
    - REAL: magnitudes reported by the anomaly RPCs
    """
    SIMULATION = "simulation"
    REAL = "real"
