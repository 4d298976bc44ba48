"""
Map-side modules of the field analysis dashboard.

Modules:
    geosearch       — Debounced, ranked Nominatim address search
    interaction     — Map click -> typed FieldSelection
    map_controller  — Single owner of map view, marker and popup
    resources       — One-time loading of map resources
    cropdata        — USDA CDL crop codes, colours and layer description
    analysis        — Fetch + normalize remote soil analysis, derive metrics
    session         — Orchestrate all of the above into session state
"""
