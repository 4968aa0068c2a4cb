from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence

from ..logging import get_logger
from ..model import Region, Service
from ..util.concurrency import check_cancelled, fan_out_first_error
from .api import CloudRunAPI

LOG = get_logger(__name__)


def discover_services(
    api: CloudRunAPI,
    project: str,
    regions: Sequence[Region],
    max_workers: int,
    *,
    on_region_done: Optional[Callable[[Region, int], None]] = None,
) -> List[Service]:
    """
    List services in every region concurrently, one task per region.

    All-or-nothing: the first failing region cancels its siblings and its
    error is raised. Results are sorted by (region, name) since arrival order
    across regions is arbitrary.
    """

    def _list_region(region: Region, cancel: threading.Event) -> List[Service]:
        check_cancelled(cancel)
        svcs = api.list_services(project, region, should_stop=cancel.is_set)
        check_cancelled(cancel)
        LOG.info("found %d svcs in %s", len(svcs), region.region_id, extra={"region": region.region_id})
        return svcs

    def _collected(region: Region, svcs: List[Service]) -> None:
        if on_region_done is not None:
            on_region_done(region, len(svcs))

    collected = fan_out_first_error(_list_region, regions, max_workers, on_result=_collected)
    out: List[Service] = []
    for _, svcs in collected:
        out.extend(svcs)
    return sorted(out, key=lambda s: s.key)
