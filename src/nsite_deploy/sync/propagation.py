"""Propagation strength of a site across relays and blob servers."""

from __future__ import annotations

from collections import Counter
from typing import Callable, Iterable, Sequence

from .models import FileRecord, PropagationStats, PropagationStrength


def _coverage(
    files: Sequence[FileRecord],
    total_nodes: int,
    nodes_of: Callable[[FileRecord], frozenset[str]],
) -> tuple[int, float]:
    """Return (files on every node, coverage percentage)."""
    if total_nodes == 0 or not files:
        return 0, 0.0
    counts = [len(nodes_of(f)) for f in files]
    on_all = sum(1 for c in counts if c >= total_nodes)
    average = sum(counts) / len(files)
    return on_all, average / total_nodes * 100


def relay_strength(total_relays: int, coverage: float) -> PropagationStrength:
    if total_relays == 0:
        return PropagationStrength.BROKEN
    if total_relays == 1:
        return PropagationStrength.FRAGILE
    if total_relays == 2:
        return PropagationStrength.WEAK
    if coverage >= 100:
        return PropagationStrength.NOMINAL
    if total_relays >= 5 and coverage > 95:
        return PropagationStrength.STRONG
    return PropagationStrength.AVERAGE


def server_strength(total_servers: int, coverage: float) -> PropagationStrength:
    if total_servers == 0:
        return PropagationStrength.BROKEN
    if total_servers == 1:
        return PropagationStrength.FRAGILE
    if total_servers < 3:
        return PropagationStrength.WEAK
    if coverage >= 100:
        return PropagationStrength.NOMINAL
    if coverage > 95:
        return PropagationStrength.STRONG
    return PropagationStrength.AVERAGE


def calculate_propagation(
    files: Iterable[FileRecord],
    relays: Sequence[str],
    servers: Sequence[str] | None = None,
) -> PropagationStats:
    """Classify how widely *files* are observed on *relays* and *servers*.

    Uses only the observed sets (``found_on_event_endpoints`` and
    ``available_on_blob_endpoints``); upload attempts never count.
    Pass ``servers=None`` when availability was not probed; the server
    side is then left unclassified.
    """
    files = list(files)
    if not files:
        return PropagationStats(
            total_files=0,
            relay_strength=PropagationStrength.BROKEN,
            server_strength=(
                None if servers is None else PropagationStrength.BROKEN
            ),
        )

    relay_ids = set(relays)
    server_ids = set(servers or ())
    relays_on_all, relay_cov = _coverage(
        files,
        len(relay_ids),
        lambda f: f.found_on_event_endpoints & relay_ids,
    )
    servers_on_all, server_cov = _coverage(
        files,
        len(server_ids),
        lambda f: f.available_on_blob_endpoints & server_ids,
    )

    per_relay: Counter[str] = Counter()
    per_server: Counter[str] = Counter()
    for f in files:
        per_relay.update(f.found_on_event_endpoints & relay_ids)
        per_server.update(f.available_on_blob_endpoints & server_ids)

    return PropagationStats(
        total_files=len(files),
        relay_strength=relay_strength(len(relay_ids), relay_cov),
        server_strength=(
            None
            if servers is None
            else server_strength(len(server_ids), server_cov)
        ),
        total_relays=len(relay_ids),
        total_servers=len(server_ids),
        files_on_all_relays=relays_on_all,
        files_on_all_servers=servers_on_all,
        relay_coverage=round(relay_cov, 2),
        server_coverage=round(server_cov, 2),
        files_per_relay={r: per_relay.get(r, 0) for r in relays},
        files_per_server={s: per_server.get(s, 0) for s in servers or ()},
    )
