"""
Database package for ScanGuard.

Public API:
    - database: Global Database instance
    - get_db: Get the global Database instance
    - Database: Connection owner and schema bootstrapper
"""
