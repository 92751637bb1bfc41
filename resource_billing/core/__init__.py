"""
Core modules for resource billing.

This package contains the migration catalog, the migration engine and the
error taxonomy they share.
"""
