"""
Rule Store Service package for the rule manager.

This package persists the strictly ordered rule list consumed by the
synchronization engine. It provides:

- app.main: API surface for login, ordered slice reads, batch commits and
  the bulk dummy-data WebSocket.
- app.store: In-memory repository keeping rules sorted by ordering key.
- app.auth: Session token issuing and verification.
- app.generator: Bounded-concurrency bulk writer for synthetic rules.

Guidelines:
- Every read and write is scoped to the caller's partition unless the
  caller holds the see-all scope.
- Commits are all-or-nothing; a rejected batch leaves the store untouched.
- The terminator rule is never edited, moved or deleted.
"""
