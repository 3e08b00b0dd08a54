# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine, ORM models, and the JobStore persistence gateway.
#
# Key exports:
#   - SqlJobStore: JobStore implementation used by the worker
#   - JobStatus: PENDING → PROCESSING → DONE | FAILED
# =============================================================================
