"""
Competition Engine - Match & Tournament Lifecycle

Responsibilities:
- Ad-hoc matches (create, join/leave, status, scores, expiry)
- Single-elimination tournaments (registration, bracket, advancement)
- Validation and optimistic-concurrency persistence
- Domain events on the configured bus (local, Redis, Google Pub/Sub)
"""
