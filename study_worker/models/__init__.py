# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Worker-side data shapes, separate from the ORM models in db/models.py:
#   - jobs.py: JobRecord, the processor's view of a job row
#   - artifacts.py: validated LLM output (flashcard decks, quiz drafts)
# =============================================================================
