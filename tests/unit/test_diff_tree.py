"""Tests for dot-path tree updates."""

import pytest

from flowdiff.diff.tree import get_path, set_path, split_path
from flowdiff.exceptions import InvalidPathError


def test_set_path_creates_intermediate_levels():
    tree = {'parameters': {}}
    set_path(tree, 'parameters.options.retry.count', 3)
    assert tree == {'parameters': {'options': {'retry': {'count': 3}}}}


def test_set_path_overwrites_leaf_and_keeps_siblings():
    tree = {'parameters': {'url': 'https://old', 'method': 'GET'}}
    set_path(tree, 'parameters.url', 'https://new')
    assert tree == {'parameters': {'url': 'https://new', 'method': 'GET'}}


def test_set_path_replaces_subtree_when_targeted():
    tree = {'parameters': {'options': {'timeout': 1}}}
    set_path(tree, 'parameters.options', {'redirect': True})
    assert tree['parameters']['options'] == {'redirect': True}


def test_set_path_through_scalar_fails():
    tree = {'parameters': {'url': 'https://old'}}
    with pytest.raises(InvalidPathError) as exc_info:
        set_path(tree, 'parameters.url.host', 'x')
    assert exc_info.value.details['blocked_at'] == 'parameters.url'
    assert tree == {'parameters': {'url': 'https://old'}}


@pytest.mark.parametrize('path', ['', 'parameters..url', '.url', 'url.'])
def test_split_path_rejects_empty_segments(path):
    with pytest.raises(InvalidPathError):
        split_path(path)


def test_get_path():
    tree = {'a': {'b': {'c': 1}}}
    assert get_path(tree, 'a.b.c') == 1
    assert get_path(tree, 'a.x', default='missing') == 'missing'
    assert get_path(tree, 'a.b.c.d') is None
