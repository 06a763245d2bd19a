"""Built-in transports. Importing a transport module registers it."""

from . import local, ssh  # noqa: F401
