__all__ = ['paths', 'server', 'copy_assets', 'build', 'dev', 'verify', 'setup']

__version__ = "0.1.0"

from .paths import ProjectLayout, layout_from_env, CRITICAL_FILES, EXTERNAL_MODULES
