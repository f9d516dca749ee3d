import logging


def configure_logging(log_level: str | int = "INFO", verbose: bool = False) -> None:
    # Accept both standard level names (e.g. "INFO") and numeric values.
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(log_level).upper(), None)
        if not isinstance(level, int):
            try:
                level = int(log_level)
            except (TypeError, ValueError):
                level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Quiet down httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
