"""
Cédula Lookup Service package.

The service answers citizen lookups against the JCE registry, enforcing:
- Identifier validation: cédula digits are checked before any I/O
- Admission control: per-client token buckets in Redis
- Caching: successful registry records are cached by cédula
- Retries, deadlines and circuit-breaking for the upstream portal

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.validation: cédula parsing and canonicalization.
- app.ratelimit: distributed two-window token bucket.
- app.caching: cache-aside result store.
- app.adapters: registry HTTP client and payload parsing.
- app.domain: records, views, response shaping, and the query pipeline.
"""
