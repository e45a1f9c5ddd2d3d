"""Verdict evaluation: reduce a probe kind's outcomes to pass/fail.

Evaluated exactly once per periodic runner, after the runner has drained its
last in-flight execution, so no outcome is still pending.
"""

import logging

from up.errors import VerdictError
from up.models import OutcomeSnapshot

logger = logging.getLogger(__name__)


def evaluate(snapshot: OutcomeSnapshot, threshold: float) -> float:
    """Return the success ratio if it meets ``threshold``.

    A run without any recorded outcome has no ratio and always fails.

    Raises:
        VerdictError: the ratio is below the threshold or undefined.
    """
    logger.info(
        "Number of requests: success=%d errors=%d", snapshot.successes, snapshot.errors
    )

    ratio = snapshot.ratio
    if ratio is None or ratio < threshold:
        logger.error("Ratio is below threshold")
        raise VerdictError(threshold, ratio)
    return ratio
