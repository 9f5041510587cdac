from typing import List

import typer
from pydantic import ValidationError

from .exceptions import ConfigurationError
from .settings import Settings
from .tokens import encode_token


app = typer.Typer(help="uprelay management commands.")


@app.callback()
def main():
    """Self-hosted upload relay."""


@app.command()
def token(
    region: List[str] = typer.Option(["us-east-1"], "--region", help="Region advertised to the SDK; repeatable."),
):
    """
    Print the UploadThing token for this relay, built from API_SECRET, APP_ID and BASE_URL.
    """
    try:
        settings = Settings()
        encoded = encode_token(settings.API_SECRET, settings.APP_ID, settings.BASE_URL, regions=region)
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors())
        typer.echo(f"Missing or invalid settings: {missing}", err=True)
        raise typer.Exit(code=1)
    except ConfigurationError as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(code=1)
    typer.echo("Here is your uploadthing token")
    typer.echo(encoded)


if __name__ == "__main__":
    app()
