"""Core (UI-agnostic) surveillance dashboard logic.

This package contains:
- mock dataset generation (records -> pandas)
- planar geometry for drawn selections (shapely + pyproj)
- the filter store and the spatial selection controller
- the reconciliation loop that keeps map, charts and KPIs consistent
- chart helpers (Altair -> Vega-Lite spec dict)
"""
