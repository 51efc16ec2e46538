import json
import logging
from pathlib import Path

from .collector import CollectorData

log = logging.getLogger(__name__)


def output_data(data: CollectorData, path: str) -> Path:
    """Write the run report as JSON, creating parent directories."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as f:
        json.dump(data.to_dict(), f, indent=2)
    log.info("Results written to %s", target)
    return target
