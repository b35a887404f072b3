"""
Internal building blocks of the client.

Nothing in here is a public interface. The public names are re-exported
from the top-level package (see :mod:`kubewire`).
"""
