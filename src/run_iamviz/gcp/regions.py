from __future__ import annotations

from typing import List, Optional, Sequence

from ..model import Region
from ..util.errors import ConfigError
from .api import CloudRunAPI


def get_regions(api: CloudRunAPI, project: str, only: Optional[Sequence[str]] = None) -> List[Region]:
    """
    Return the Cloud Run regions for the project sorted by id, optionally
    restricted to the given region ids.
    """
    regions = {r.region_id: r for r in api.list_regions(project)}
    if only:
        unknown = sorted(set(only) - set(regions))
        if unknown:
            raise ConfigError(f"Unknown Cloud Run region(s) for project {project!r}: {', '.join(unknown)}")
        regions = {rid: r for rid, r in regions.items() if rid in set(only)}
    return [regions[rid] for rid in sorted(regions)]
