"""
Database Management Scripts

This module contains the park store:
- ParkStore interface and the in-memory implementation
- PostgreSQL/PostGIS implementation and table definition
"""
