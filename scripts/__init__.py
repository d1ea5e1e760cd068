"""
Park Reconciler Scripts Package

This package contains the park record reconciliation pipeline organized into
logical subdirectories:

- collectors/: Source schemas, field mapping, upstream API clients, file parsing, geocoding
- processors/: Name normalization, scoring, matching, merge policy, geometry, ingestion
- database/: Park store interface and the PostGIS implementation
- storage/: Object storage, chunked transfer and background file jobs
"""
