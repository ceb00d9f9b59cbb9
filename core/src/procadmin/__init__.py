from procadmin.config import AdminConfig, load_admin_config
from procadmin.home import AdminPaths, ensure_admin_layout, resolve_admin_home

__version__ = "0.1.0"

__all__ = [
    "AdminConfig",
    "AdminPaths",
    "__version__",
    "ensure_admin_layout",
    "load_admin_config",
    "resolve_admin_home",
]
