"""
Service layer helpers for the SBT Transport admin backend.

Modules:
    data_layer  - PostgREST client and per-table repositories
    memo        - Memo number allocation
    projection  - Services price list (areas x vehicle types x brands)
    bundle      - Database import/export and CSV pack
"""
