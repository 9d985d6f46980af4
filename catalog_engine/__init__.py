"""
Top-level package for the HACS integration catalog engine.

This package contains modules for syncing the upstream HACS integration
data, building a scored catalog snapshot, and browsing it: a pure score
model, a canonical filter/sort state that round-trips through the URL, a
query engine evaluated on a background worker, a bounded compare selection,
and a small API that serves the snapshot. There are no side-effects on
import and the builder and sync modules can be run as scripts.
"""
