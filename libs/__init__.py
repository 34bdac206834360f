# =============================================================================
# dbt Cloud Observer Shared Libraries
# =============================================================================
# This package contains shared libraries for the dbt Cloud run observer.
# See individual sub-packages for detailed documentation.
# =============================================================================

"""
dbt Cloud observer shared libraries.

Sub-packages:
- models: Pydantic data models and settings
- dbt_cloud: Resilient API client, poll engine and artifact transcoder
"""

__version__ = "0.1.0"
