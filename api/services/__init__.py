"""
API Services Layer.

Database operations behind the representation engine. Each module works on
a caller-supplied session; ``RepresentationEngine`` owns transactions,
locking and event delivery.
"""

from api.services.engine import RepresentationEngine, parse_stage
from api.services.fee_split import FeeSplit, compute_split, resolve_share_percentage

__all__ = [
    "RepresentationEngine",
    "parse_stage",
    "FeeSplit",
    "compute_split",
    "resolve_share_percentage",
]
