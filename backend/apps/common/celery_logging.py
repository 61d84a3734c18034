import logging
from typing import Any, Dict, Tuple

from celery.signals import task_prerun, task_postrun, task_failure

from apps.common.logging_utils import build_log_extra, truncate_for_log


logger = logging.getLogger(__name__)


def _sanitize_payload(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "task_args": [truncate_for_log(arg, 500) for arg in args],
        "task_kwargs": {key: truncate_for_log(val, 500) for key, val in kwargs.items()},
    }


@task_prerun.connect
def log_task_prerun(sender=None, task_id=None, task=None, args=None, kwargs=None, **_):
    payload = _sanitize_payload(args or (), kwargs or {})
    logger.info(
        "celery_task_started",
        extra={
            "task_id": task_id,
            "task_name": getattr(sender, "name", None),
            **payload,
        },
    )


@task_postrun.connect
def log_task_postrun(sender=None, task_id=None, task=None, retval=None, state=None, **_):
    # Embedding tasks return {'ok': bool, 'count': int, 'error': ...}
    outcome = retval if isinstance(retval, dict) and "ok" in retval else {}
    logger.info(
        "celery_task_completed",
        extra=build_log_extra(
            task_id=task_id,
            task_name=getattr(sender, "name", None),
            state=state,
            task_ok=outcome.get("ok"),
            embedded_count=outcome.get("count"),
            task_error=outcome.get("error"),
        ),
    )


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, **_):
    payload = _sanitize_payload(args or (), kwargs or {})
    logger.error(
        "celery_task_failed",
        extra={
            "task_id": task_id,
            "task_name": getattr(sender, "name", None),
            "exception": repr(exception),
            **payload,
        },
    )
