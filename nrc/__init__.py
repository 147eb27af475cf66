"""NewResource Controller (NRC).

Level-triggered reconciliation controller for ``NewResource`` objects:
 - watches a resource store for changes
 - reconciles each changed resource towards its desired spec
 - records outcomes as Prometheus metrics
 - writes the observed state back to the status subresource

The core loop lives in :mod:`nrc.reconciler`; the rest is the small amount of
plumbing needed to run it as a single-node service.
"""
