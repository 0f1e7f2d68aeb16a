"""
Care Routing Package
Enrichment, scoring and recommendation logic for nearby care
"""

from . import enrichment
from . import scoring
from . import recommendation

__all__ = ['enrichment', 'scoring', 'recommendation']
