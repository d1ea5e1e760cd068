"""
Data Processing Scripts

This module contains the reconciliation pipeline stages:
- Park name normalization and quality scoring
- Entity matching and the merge/protect policy
- Boundary validation, repair, simplification and WKT encoding
- Batch ingestion, coordinate backfill and quality reporting
"""
