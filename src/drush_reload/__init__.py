"""
Drush Database Reload Tool - Copy a Drupal database between drush site aliases

Tables are listed on the source, dumped one per drush invocation and imported
into the destination as soon as each dump lands on disk. Dumps and imports run
on separate worker pools sized to the CPU count of the source and destination.

Main features:
- Local or remote (SSH) aliases, with remote CPU counts read over drush ssh
- Skip-list for tables that should not be copied
- Optional drop of destination tables before import
- Post-import database updates (drush updb)
- Config file or command-line support

Usage:
    drush-reload -s @site.prod -d @site.local
    drush-reload -s @site.prod -d @site.local -t cache,watchdog -r -v
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .drush import DrushRunner
from .pipeline import ReloadPipeline
from .reload import DatabaseReloadTool, ReloadOptions
from .targets import Target

__all__ = [
    "DatabaseReloadTool",
    "DrushRunner",
    "ReloadOptions",
    "ReloadPipeline",
    "Target",
]
