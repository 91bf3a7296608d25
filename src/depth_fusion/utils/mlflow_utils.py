"""MLFlow Utilities for the fusion pipeline.

Helpers for logging fusion parameters and metrics. Logging problems are
reported as warnings and never interrupt a pipeline run.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional, Union

import mlflow
import numpy as np

logger = logging.getLogger(__name__)

MAX_PARAM_LENGTH = 500


@contextmanager
def mlflow_run(
    experiment_name: str = "depth_fusion",
    run_name: Optional[str] = None,
    tags: Optional[Dict[str, str]] = None,
    nested: bool = False,
):
    """Open a run in ``experiment_name``, or join the one already active.

    A run started elsewhere (a Kedro hook, the CLI) is yielded as is unless
    ``nested`` asks for a child run.
    """
    active = mlflow.active_run()
    if active is not None and not nested:
        yield active
        return

    mlflow.set_experiment(experiment_name)

    with mlflow.start_run(run_name=run_name, nested=nested) as run:
        if tags:
            mlflow.set_tags(tags)
        logger.info(f"Started MLFlow run: {run.info.run_id}")
        yield run
        logger.info(f"Finished MLFlow run: {run.info.run_id}")


def log_params_safe(params: Dict[str, Any], prefix: str = "") -> None:
    """Log a (possibly nested) parameter dict, one param per leaf.

    Nested keys are joined with underscores and values are stringified and
    cut to the tracking server's length limit. A rejected param is reported
    and the remaining ones are still sent.
    """
    for key, value in _flatten_dict(params, prefix).items():
        text = str(value)
        if len(text) > MAX_PARAM_LENGTH:
            text = text[: MAX_PARAM_LENGTH - 3] + "..."
        try:
            mlflow.log_param(key, text)
        except Exception as e:
            logger.warning(f"Could not log param {key}: {e}")


def log_metrics_safe(
    metrics: Dict[str, Union[int, float]],
    step: Optional[int] = None,
    prefix: str = "",
) -> None:
    """Log the finite numeric entries of ``metrics``; everything else is skipped."""
    for key, value in metrics.items():
        if not isinstance(value, (int, float)) or not np.isfinite(value):
            continue
        name = prefix + key
        try:
            mlflow.log_metric(name, value, step=step)
        except Exception as e:
            logger.warning(f"Could not log metric {name}: {e}")


def log_fusion_run(
    params: Dict[str, Any],
    metrics: Dict[str, float],
    experiment_name: str = "depth_fusion",
    step: Optional[int] = None,
) -> None:
    """Log frame fusion configuration and metrics.

    Args:
        params: Frame fusion parameters.
        metrics: Fusion metrics (detections, depth statistics, timings).
        experiment_name: Experiment to log into when no run is active.
        step: Optional step number.
    """
    try:
        with mlflow_run(experiment_name, run_name="frame_fusion"):
            log_params_safe(params, prefix="fusion_")
            log_metrics_safe(metrics, step=step, prefix="fusion_")
        logger.info("Fusion metrics logged to MLFlow")
    except Exception as e:
        logger.warning(f"Failed to log to MLFlow: {e}")


def _flatten_dict(d: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat = {}
    for key, value in d.items():
        name = prefix + key
        if isinstance(value, dict):
            flat.update(_flatten_dict(value, name + "_"))
        else:
            flat[name] = value
    return flat
