# =============================================================================
# Workers Package — Job-Queue Consumer
# =============================================================================
#   - retry.py: bounded retry for connection-exhaustion errors
#   - batch.py: fixed-size worker pool over a task list
#   - kinds.py: flashcard / quiz job descriptors
#   - processor.py: per-job state machine
#   - scheduler.py: timer-driven, non-overlapping poll cycles
# =============================================================================
