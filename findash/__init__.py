"""Core (UI-agnostic) financial dashboard logic.

This package contains:
- data loading (JSON fixture -> pydantic records -> pandas)
- period / scenario / BU filter normalization
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
