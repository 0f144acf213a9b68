"""Approval workflow engine.

The components, leaf first:
- History ledger (append-only audit trail)
- Signature store (append-only signing events)
- Step sequencer (ordered steps, current-step pointer)
- Workflow controller (lifecycle, transitions, deliverable status)

Import the concrete modules directly; this package keeps no re-exports so the
persistence models can depend on `engine.errors` without an import cycle.
"""

__all__: list[str] = []
