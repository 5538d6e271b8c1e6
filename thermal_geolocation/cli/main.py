"""Main Typer CLI application for thermal geolocation tools."""

import logging

import typer

app = typer.Typer(
    help="Thermal camera target geolocation and altitude calibration tools",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Thermal camera target geolocation and altitude calibration tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _register_commands() -> None:
    """
    Import command modules to register commands with the app.

    Commands use the @app.command() decorator and register themselves
    when the module is imported.
    """
    from thermal_geolocation.cli import geolocate

    _ = geolocate


_register_commands()


if __name__ == "__main__":
    app()
