"""Prometheus counters for bundle encoding and signing.

Metrics live on a private registry so embedding applications decide whether
(and where) to expose them. Labels stay low-cardinality: version, key type and
a collapsed failure reason only.
"""
from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest

REGISTRY = CollectorRegistry()

BUNDLES_FINALIZED = Counter(
    "wbn_bundles_finalized_total",
    "Bundles finalized by a builder.",
    ["version"],
    registry=REGISTRY,
)
BUNDLE_BYTES = Counter(
    "wbn_bundle_bytes_total",
    "Total bytes of finalized bundles.",
    registry=REGISTRY,
)
SIGNATURES_PRODUCED = Counter(
    "wbn_signatures_produced_total",
    "Integrity signatures produced and self-verified.",
    ["key_type"],
    registry=REGISTRY,
)
SIGNING_FAILURES = Counter(
    "wbn_signing_failures_total",
    "Signing sessions that failed.",
    ["reason"],
    registry=REGISTRY,
)


def render_latest() -> bytes:
    return generate_latest(REGISTRY)
