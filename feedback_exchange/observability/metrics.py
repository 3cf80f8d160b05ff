"""
Prometheus metrics for the feedback exchange engine.
"""

from prometheus_client import Counter, Histogram


# ── Token Ledger ─────────────────────────────────────────────
ledger_transactions_total = Counter(
    "ledger_transactions_total",
    "Ledger rows written",
    ["reason"],
)

ledger_insufficient_balance_total = Counter(
    "ledger_insufficient_balance_total",
    "Debits rejected for insufficient balance",
    ["reason"],
)

# ── Listings & Reviews ───────────────────────────────────────
listings_created_total = Counter(
    "listings_created_total",
    "Total feedback listings posted",
)

listing_claims_total = Counter(
    "listing_claims_total",
    "Claim attempts by outcome",
    ["outcome"],
)

reviews_submitted_total = Counter(
    "reviews_submitted_total",
    "Total reviews submitted",
)

ratings_created_total = Counter(
    "ratings_created_total",
    "Ratings recorded",
    ["score"],
)

# ── Abuse Control ────────────────────────────────────────────
strikes_issued_total = Counter(
    "strikes_issued_total",
    "Reviewer strikes issued",
    ["source"],
)

suspensions_total = Counter(
    "suspensions_total",
    "Reviewer suspensions issued",
)

disputes_total = Counter(
    "disputes_total",
    "Dispute transitions",
    ["status"],
)

# ── Reapers ──────────────────────────────────────────────────
reaper_rows_affected_total = Counter(
    "reaper_rows_affected_total",
    "Rows changed by maintenance reapers",
    ["job"],
)

reaper_duration_seconds = Histogram(
    "reaper_duration_seconds",
    "Time per maintenance reaper run",
    ["job"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30],
)

# ── Collaborators ────────────────────────────────────────────
collaborator_failures_total = Counter(
    "collaborator_failures_total",
    "Fire-and-forget collaborator calls that failed",
    ["collaborator", "operation"],
)
