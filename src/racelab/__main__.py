"""Allow ``python -m racelab``; worker processes are spawned this way."""

from .cli import app

if __name__ == "__main__":
    app()
