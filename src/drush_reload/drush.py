"""
Thin wrapper around the drush command line tool

Every upstream operation is a single drush invocation returning the captured
stdout bytes, or raising DrushCommandError when drush exits non-zero.
"""

import logging
import subprocess
from typing import List, Optional

from .errors import DrushCommandError

logger = logging.getLogger(__name__)

CPU_COUNT_COMMAND = 'grep -c ^processor /proc/cpuinfo'
SHOW_TABLES_QUERY = 'SHOW TABLES'


def alias_arg(alias: str) -> str:
    """Return the alias in drush's '@name' form"""
    return '@' + alias.lstrip('@')


class DrushRunner:
    """Run drush subcommands against site aliases"""

    def __init__(self, binary: str = 'drush'):
        self.binary = binary

    def build_command(self, args: List[str], alias: Optional[str] = None) -> List[str]:
        cmd = [self.binary]
        if alias:
            cmd.append(alias_arg(alias))
        cmd.extend(args)
        return cmd

    def run(self, args: List[str], alias: Optional[str] = None,
            stdin_path: Optional[str] = None) -> bytes:
        """Execute a drush command and return its stdout

        Args:
            args: drush subcommand and its arguments
            alias: Site alias to run against (optional)
            stdin_path: File fed to the command as standard input (optional)
        """
        cmd = self.build_command(args, alias)
        command_line = ' '.join(cmd)
        logger.debug(f"Executing drush command: {command_line}")

        try:
            if stdin_path:
                with open(stdin_path, 'rb') as f:
                    process = subprocess.Popen(
                        cmd,
                        stdin=f,
                        stdout=subprocess.PIPE,
                        stderr=subprocess.PIPE
                    )
                    stdout, stderr = process.communicate()
            else:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE
                )
                stdout, stderr = process.communicate()
        except FileNotFoundError:
            logger.error(f"{self.binary} command not found. Install drush and make sure it is on PATH")
            raise DrushCommandError(command_line, 127, f"{self.binary}: command not found")

        if process.returncode != 0:
            raise DrushCommandError(
                command_line,
                process.returncode,
                stderr.decode('utf-8', errors='ignore')
            )

        return stdout

    def check_drush_tool(self) -> bool:
        """Check if the drush command is available"""
        try:
            result = subprocess.run([self.binary, '--version'], capture_output=True, timeout=30)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            logger.error(f"Missing required tool: {self.binary}")
            logger.error("Please install drush: https://www.drush.org/latest/install/")
            return False

        if result.returncode != 0:
            logger.error(f"{self.binary} --version exited with status {result.returncode}")
            return False

        return True

    def alias_info(self, alias: str) -> bytes:
        return self.run(['sa', alias_arg(alias), '--full'])

    def list_tables(self, alias: str) -> bytes:
        return self.run(['sqlq', '--extra=--skip-column-names', SHOW_TABLES_QUERY], alias=alias)

    def sql_drop(self, alias: str) -> bytes:
        return self.run(['sql-drop', '--yes'], alias=alias)

    def sql_dump(self, alias: str, table: str) -> bytes:
        """Dump a single table, gzip-compressed"""
        return self.run(['sql-dump', '--gzip', f'--tables-list={table}'], alias=alias)

    def sql_import(self, alias: str, path: str) -> bytes:
        """Load a SQL file into the alias' database through sqlc"""
        return self.run(['sqlc'], alias=alias, stdin_path=path)

    def update_db(self, alias: str) -> bytes:
        return self.run(['updb', '--yes'], alias=alias)

    def remote_cpu_count(self, alias: str) -> bytes:
        return self.run(['ssh', CPU_COUNT_COMMAND], alias=alias)
