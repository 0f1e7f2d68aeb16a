"""
Data Sources Package
Provider clients and shared plumbing for external data sources
"""

from . import overpass_api
from . import osrm_api
from . import geocoding
from . import capacity_seeds

__all__ = ['overpass_api', 'osrm_api', 'geocoding', 'capacity_seeds']
