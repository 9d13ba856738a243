"""Typer CLI entrypoint with structured error handling."""

from __future__ import annotations

import sys

import typer

from occupancy_engine.cli.commands.analyze import analyze
from occupancy_engine.cli.commands.pstar import pstar
from occupancy_engine.exceptions import (
    ConfigValidationError,
    DataSourceError,
    DimensionMismatchError,
    ModelFitError,
    ResourceLimitError,
    SelectionError,
)
from occupancy_engine.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Occupancy model search, averaging and P* sensitivity")


app.command()(analyze)
app.command()(pstar)


log = get_logger(__name__, component="cli")


def main() -> None:
    configure_logging(component="cli")
    try:
        app()
    except ConfigValidationError as exc:
        log.error(str(exc))
        raise SystemExit(1)
    except DataSourceError as exc:
        log.error(f"Data validation failed: {exc}")
        raise SystemExit(2)
    except ModelFitError as exc:
        log.error(f"Model fitting failed: {exc}")
        raise SystemExit(3)
    except SelectionError as exc:
        log.error(f"Model selection failed: {exc}")
        raise SystemExit(4)
    except DimensionMismatchError as exc:
        log.error(f"Model averaging failed: {exc}")
        raise SystemExit(5)
    except ResourceLimitError as exc:
        log.error(f"Resource limit exceeded: {exc}")
        raise SystemExit(6)
    except KeyboardInterrupt:
        log.info("Shutdown requested")
        raise SystemExit(130)
    except Exception:
        log.exception("Unhandled exception")
        raise SystemExit(255)


if __name__ == "__main__":
    sys.exit(main())
