# =============================================================================
# Study Material Worker
# =============================================================================
# Background worker that turns study material (inline text or a PDF behind
# an HTTP, Dropbox or R2 reference) into flashcard sets and quizzes with an
# LLM, and stores them in PostgreSQL.
#
# Package structure:
#   study_worker/
#   ├── db/          → Async engine, ORM models, persistence gateway
#   ├── models/      → Pydantic job records and generation payloads
#   ├── services/    → PDF extraction, LLM providers, generation strategies
#   └── workers/     → Retry executor, batch runner, job processor, scheduler
# =============================================================================
