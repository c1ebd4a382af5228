#!/usr/bin/env python3
"""
Drush Database Reload Tool
Copy a Drupal database between two drush site aliases, one table at a time,
dumping and importing in parallel bounded by each side's CPU count
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import __version__
from .drush import DrushRunner
from .errors import ReloadError
from .pipeline import ReloadPipeline
from .stages import drop_tables, make_dump_dir, post_migrate, remove_dump_dir
from .targets import resolve_targets

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@dataclass
class ReloadOptions:
    source: str
    dest: str
    skip_tables: List[str] = field(default_factory=list)
    verbose: bool = False
    skip_drop: bool = False
    keep_dump: bool = False
    drush: str = 'drush'
    tmp_root: Optional[str] = None


def banner(title: str):
    logger.info("=" * 50)
    logger.info(title)
    logger.info("=" * 50)


class DatabaseReloadTool:
    """Reload the destination alias' database from the source alias"""

    def __init__(self, options: ReloadOptions, runner: Optional[DrushRunner] = None):
        self.options = options
        self.runner = runner or DrushRunner(options.drush)
        self.source = None
        self.dest = None
        self.dump_dir = None
        self.imported: List[str] = []

    def reload(self) -> bool:
        """Run every phase in order; stop at the first fatal error

        Returns True when all tables were imported and database updates ran.
        """
        opts = self.options
        try:
            banner("RESOLVING ALIASES")
            self.source, self.dest = resolve_targets(self.runner, opts.source, opts.dest)

            if opts.skip_drop:
                logger.info(f"Skipping table drop on {self.dest.alias}")
            else:
                banner("DROPPING DESTINATION TABLES")
                drop_tables(self.runner, self.dest)

            self.dump_dir = make_dump_dir(opts.source, opts.dest, opts.tmp_root)
            banner(f"RELOADING {self.dest.alias} FROM {self.source.alias}")
            pipeline = ReloadPipeline(
                self.runner,
                self.source,
                self.dest,
                self.dump_dir,
                skip_tables=opts.skip_tables,
            )
            self.imported = pipeline.run()
            logger.info(f"Imported {len(self.imported)} tables")

            self._cleanup()
            banner("POST-MIGRATION UPDATES")
            post_migrate(self.runner, self.dest)

            banner("RELOAD COMPLETED SUCCESSFULLY")
            return True

        except ReloadError as err:
            logger.error(f"Reload failed: {err}")
            self._cleanup()
            return False
        except Exception as err:
            logger.error(f"Unexpected error: {err}", exc_info=True)
            self._cleanup()
            return False

    def _cleanup(self):
        if not self.dump_dir:
            return
        if self.options.keep_dump:
            logger.info(f"Keeping dump files at: {self.dump_dir}")
        else:
            logger.info("Cleaning up dump directory...")
            remove_dump_dir(self.dump_dir)
        self.dump_dir = None


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from JSON file"""
    try:
        with open(config_path, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)
    except json.JSONDecodeError as err:
        logger.error(f"Invalid JSON in config file: {err}")
        sys.exit(1)


def create_sample_config():
    """Print sample configuration"""
    sample = {
        "source": "@mysite.prod",
        "dest": "@mysite.local",
        "skip_tables": ["cache", "cache_bootstrap", "watchdog"],
        "skip_drop": False,
        "keep_dump": False,
        "verbose": False,
        "drush": "drush",
        "tmp_dir": "/tmp"
    }

    print(json.dumps(sample, indent=2))


def parse_table_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated table list, ignoring blanks"""
    if not value:
        return []
    return [name.strip() for name in value.split(',') if name.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='drush-reload',
        description='Drush Database Reload Tool - Copy a database between drush site aliases table by table',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Reload the local site from production
  drush-reload -s @mysite.prod -d @mysite.local

  # Skip cache tables and print each dump/import
  drush-reload -s @mysite.prod -d @mysite.local -t cache,cache_menu -v

  # Keep existing destination tables (no sql-drop)
  drush-reload -s @mysite.prod -d @mysite.local -r

  # Use a config file
  drush-reload --config reload.json

  # Show sample config
  drush-reload --sample-config
        """
    )

    parser.add_argument('-s', '--source', type=str, help='Source site alias')
    parser.add_argument('-d', '--dest', type=str, help='Destination site alias')
    parser.add_argument('-t', '--tables', type=str, help='Comma-separated list of tables to skip')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log every table dump and import')
    parser.add_argument('-r', '--skip-drop', action='store_true', help='Do not drop destination tables before importing')
    parser.add_argument('--keep-dump', action='store_true', help='Keep the dump directory after the reload')
    parser.add_argument('--drush', type=str, help='Path to the drush executable (default: drush)')
    parser.add_argument('--tmp-dir', type=str, help='Directory to create the dump directory in (default: system temp)')
    parser.add_argument('--config', type=str, help='Path to JSON config file')
    parser.add_argument('--sample-config', action='store_true', help='Print sample configuration')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def options_from_args(args: argparse.Namespace, config: Dict[str, Any]) -> ReloadOptions:
    """Merge command-line arguments over config file values"""
    skip_tables = parse_table_list(args.tables) if args.tables else list(config.get('skip_tables', []))
    return ReloadOptions(
        source=args.source or config.get('source'),
        dest=args.dest or config.get('dest'),
        skip_tables=skip_tables,
        verbose=args.verbose or bool(config.get('verbose', False)),
        skip_drop=args.skip_drop or bool(config.get('skip_drop', False)),
        keep_dump=args.keep_dump or bool(config.get('keep_dump', False)),
        drush=args.drush or config.get('drush', 'drush'),
        tmp_root=args.tmp_dir or config.get('tmp_dir'),
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Show sample config and exit
    if args.sample_config:
        create_sample_config()
        return 0

    config = load_config_file(args.config) if args.config else {}
    options = options_from_args(args, config)

    # Set logging level
    if options.verbose:
        logging.getLogger('drush_reload').setLevel(logging.DEBUG)

    if not options.source or not options.dest:
        parser.print_usage(sys.stderr)
        logger.error("Both a source (-s) and a destination (-d) alias are required")
        return 1

    try:
        tool = DatabaseReloadTool(options)
        if not tool.runner.check_drush_tool():
            return 1

        logger.info(f"Starting reload: {options.source} -> {options.dest}")
        if options.skip_tables:
            logger.info(f"Skipping tables: {', '.join(options.skip_tables)}")

        success = tool.reload()
        return 0 if success else 1

    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 1
    except Exception as err:
        logger.error(f"Unexpected error: {err}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
