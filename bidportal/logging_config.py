from __future__ import annotations

import logging

AUDIT_LOGGER = "bidportal.audit"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_app_logging(level: str = "INFO", audit_level: str | None = None) -> None:
    """
    Set levels for the `bidportal` logger tree.

    Notes:
    - Under uvicorn the root logger already has handlers; we only set levels.
      Run any other way (scripts, a bare ASGI server) and a stream handler is
      attached to the root logger so records are not dropped.
    - `BIDPORTAL_LOG_LEVEL` controls the package; `BIDPORTAL_AUDIT_LOG_LEVEL`
      controls the per-decision audit trail (WARNING silences it).
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(format=_FORMAT)

    logging.getLogger("bidportal").setLevel(level.upper())
    logging.getLogger(AUDIT_LOGGER).setLevel((audit_level or level).upper())
