# =============================================================================
# Services Package — External Collaborators
# =============================================================================
#   - extraction.py: file reference validation + PDF download (HTTP, Dropbox, R2)
#   - parser.py: PDF parsing with Docling
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - generation.py: flashcard and quiz generation strategies
# =============================================================================
