"""
Tests for alias resolution and CPU count lookup.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from drush_reload.errors import AliasResolutionError, DrushCommandError
from drush_reload.targets import (
    Target,
    default_core_count,
    is_local_alias,
    parse_core_count,
    resolve_target,
    resolve_targets,
)
from fake_drush import FakeDrush


@pytest.mark.parametrize("output,expected", [
    (b'8\n', 8),
    (b'  16 processors', 16),
    (b'Connection to x closed.\n12\n', 12),
    (b'', 3),
    (b'no digits here', 3),
    (b'0\n', 3),
])
def test_parse_core_count(output, expected):
    assert parse_core_count(output, default=3) == expected


def test_default_core_count_is_positive():
    assert default_core_count() >= 1


def test_is_local_alias():
    assert is_local_alias(b"array('root' => '/var/www')")
    assert not is_local_alias(b"array('remote-host' => 'db.example.com')")


def test_local_alias_uses_default_cores():
    runner = FakeDrush()
    target = resolve_target(runner, 'site.local', default_cores=6)

    assert target == Target(alias='site.local', is_local=True, core_count=6)
    assert runner.commands('ssh') == []


def test_remote_alias_reads_cpu_count():
    runner = FakeDrush(remote=['site.prod'], cpu_output={'site.prod': b'24\n'})
    target = resolve_target(runner, 'site.prod', default_cores=2)

    assert not target.is_local
    assert target.core_count == 24
    assert runner.commands('ssh') == [('ssh', 'site.prod')]


def test_remote_cpu_lookup_failure_falls_back():
    error = DrushCommandError('drush @site.prod ssh', 255, 'Permission denied')
    runner = FakeDrush(remote=['site.prod'], cpu_output={'site.prod': error})

    assert resolve_target(runner, 'site.prod', default_cores=5).core_count == 5


def test_unknown_alias_raises():
    runner = FakeDrush(fail_alias=['missing'])
    with pytest.raises(AliasResolutionError):
        resolve_targets(runner, 'site.local', 'missing')


def test_resolve_targets_pair():
    runner = FakeDrush(remote=['site.prod'], cpu_output={'site.prod': b'2'})
    source, dest = resolve_targets(runner, 'site.prod', 'site.local', default_cores=4)

    assert (source.alias, source.core_count) == ('site.prod', 2)
    assert (dest.alias, dest.is_local, dest.core_count) == ('site.local', True, 4)
