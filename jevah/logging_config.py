"""
Logging setup for the API process.

``setup_logging`` attaches a single console handler to the root logger.
Each line carries the id of the request that emitted it.
Modules log through ``logging.getLogger(__name__)`` and never configure
handlers themselves.
"""
import logging

from jevah.middleware import RequestIdFilter


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once; later calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    # SQL echo is controlled by settings.DEBUG on the engine itself.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
