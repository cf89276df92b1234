"""InsiderScope - SEC Form 4 open-market purchase ingestion.

Polls EDGAR's "current filings" Form 4 feed in small, time-boxed invocations:
- each invocation scans a bounded number of feed pages inside a wall-clock budget
- only code "P" (open-market purchase) transactions are stored
- rows are keyed by a deterministic dedup identity, so re-runs update in place
- a per-stream cursor lets the next invocation resume where the last one stopped

See DESIGN.md for the component layout.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
