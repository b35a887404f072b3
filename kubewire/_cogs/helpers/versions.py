"""
Detecting the library's own version, as installed.

The version is used to self-identify in the ``User-Agent`` header
and in the CLI's ``--version`` output. It is determined only once
when the code is loaded.
"""
from typing import Optional

version: Optional[str] = None

try:
    import importlib.metadata
except ImportError:
    pass
else:
    try:
        name, *_ = __name__.split('.')  # usually "kubewire", unless renamed/forked.
        version = importlib.metadata.version(name)
    except Exception:
        pass  # not installed, e.g. run from a source checkout.
