"""PressBox: local WordPress environments on a local PHP server or Docker Compose."""

__version__ = "0.1.0"
