"""
Exceptions raised while reloading a database between drush aliases
"""
from typing import Optional


class ReloadError(Exception):
    """Base exception for all reload errors"""
    pass


class DrushCommandError(ReloadError):
    """A drush command exited with a non-zero status"""

    def __init__(self, command: str, returncode: int, stderr: str = ''):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"'{command}' exited with status {returncode}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message)


class AliasResolutionError(ReloadError):
    """Site alias could not be examined"""
    pass


class CoreLookupError(ReloadError):
    """CPU count of a remote target could not be read (non-fatal)"""
    pass


class TableListError(ReloadError):
    """Listing tables on the source failed"""
    pass


class DropError(ReloadError):
    """Dropping destination tables failed"""
    pass


class DumpError(ReloadError):
    """Dumping, decompressing or writing a table dump failed"""

    def __init__(self, table: str, reason: str):
        self.table = table
        super().__init__(f"Dump of table '{table}' failed: {reason}")


class TableImportError(ReloadError):
    """Importing a table dump into the destination failed"""

    def __init__(self, table: str, reason: str):
        self.table = table
        super().__init__(f"Import of table '{table}' failed: {reason}")


class CleanupError(ReloadError):
    """Temporary dump directory could not be removed (logged only)"""
    pass


class PostMigrationError(ReloadError):
    """Post-import database update failed"""
    pass


def describe(err: BaseException, table: Optional[str] = None) -> str:
    """Short one-line description of an error for log output"""
    prefix = f"[{table}] " if table else ''
    return f"{prefix}{type(err).__name__}: {err}"
