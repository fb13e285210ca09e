"""Base exception for vfio-user-sys.

Each component defines its own error next to the code that raises it; they all
derive from VfioUserSysError so callers can catch the whole family at once.
"""


class VfioUserSysError(Exception):
    """Base class for all vfio-user-sys errors."""
    pass
