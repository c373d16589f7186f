"""
Event Id Discovery - bounded probing of the portal's numeric event id space

Used when the calendar listing misses events (old meetings scroll out of the
lazy-loaded calendar). Ids are probed sequentially and classified from the
rendered page. Scanning is always bounded by a probe budget, an id ceiling
and a run of consecutive misses.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from config import get_logger
from exceptions import ConfigurationError, TransientFetchError

logger = get_logger(__name__).bind(component="vendor")

Probe = Callable[[int], Awaitable[str]]


@dataclass
class DiscoveryResult:
    valid: List[int] = field(default_factory=list)
    invalid: List[int] = field(default_factory=list)
    inconclusive: List[int] = field(default_factory=list)
    probes: int = 0
    stopped_reason: Optional[str] = None  # max_probes, consecutive_misses, ceiling, exhausted


class EventIdDiscoverer:
    """Probe ids in [start, stop) and sort them into valid / invalid / inconclusive

    Args:
        probe: Coroutine event_id -> "valid" | "invalid". Network failures
            surface as TransientFetchError and are recorded as inconclusive;
            they do not count as misses.
        max_probes: Hard cap on probe calls per discover()
        id_ceiling: Ids at or above this are never probed
        max_consecutive_misses: Stop after this many invalid ids in a row

    Raises:
        ConfigurationError: on non-positive bounds
    """

    def __init__(
        self,
        probe: Probe,
        max_probes: int = 200,
        id_ceiling: Optional[int] = None,
        max_consecutive_misses: int = 30,
    ):
        if max_probes <= 0:
            raise ConfigurationError("max_probes must be positive", config_key="max_probes")
        if max_consecutive_misses <= 0:
            raise ConfigurationError(
                "max_consecutive_misses must be positive", config_key="max_consecutive_misses"
            )
        if id_ceiling is not None and id_ceiling <= 0:
            raise ConfigurationError("id_ceiling must be positive", config_key="id_ceiling")

        self.probe = probe
        self.max_probes = max_probes
        self.id_ceiling = id_ceiling
        self.max_consecutive_misses = max_consecutive_misses

    async def discover(self, start: int, stop: int) -> DiscoveryResult:
        if start < 0 or stop < start:
            raise ConfigurationError(f"Invalid id range {start}..{stop}", config_key="id_range")

        upper = stop if self.id_ceiling is None else min(stop, self.id_ceiling)
        result = DiscoveryResult()
        misses = 0

        for event_id in range(start, upper):
            if result.probes >= self.max_probes:
                result.stopped_reason = "max_probes"
                break

            result.probes += 1
            try:
                verdict = await self.probe(event_id)
            except TransientFetchError as e:
                result.inconclusive.append(event_id)
                logger.debug("probe inconclusive", event_id=event_id, error=str(e))
                continue

            if verdict == "valid":
                result.valid.append(event_id)
                misses = 0
            else:
                result.invalid.append(event_id)
                misses += 1
                if misses >= self.max_consecutive_misses:
                    result.stopped_reason = "consecutive_misses"
                    break
        else:
            result.stopped_reason = "ceiling" if upper < stop else "exhausted"

        logger.info(
            "event discovery finished",
            start=start,
            stop=stop,
            probes=result.probes,
            valid=len(result.valid),
            invalid=len(result.invalid),
            inconclusive=len(result.inconclusive),
            stopped_reason=result.stopped_reason,
        )
        return result
