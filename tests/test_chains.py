"""Tests for plotpipe.chains.find_chains.

Chains are always reported in absolute coordinates, whether the search starts
at the root or at a nested model.

Run:
    pytest tests/test_chains.py -v
"""

import pytest

from plotpipe.chains import find_chains
from plotpipe.geometry import Arc, Circle, GeometryModel, Line

from conftest import square_lines


def _model(*paths):
    return GeometryModel().add_paths(paths)


def test_single_line():
    (chain,) = find_chains(_model(Line((0.0, 0.0), (5.0, 0.0))))
    assert len(chain.links) == 1
    assert not chain.closed


def test_two_disjoint_lines():
    chains = find_chains(_model(Line((0.0, 0.0), (5.0, 0.0)), Line((10.0, 0.0), (15.0, 0.0))))
    assert len(chains) == 2
    assert all(len(c.links) == 1 and not c.closed for c in chains)


def test_rectangle_is_one_closed_chain():
    (chain,) = find_chains(_model(*square_lines(4.0)))
    assert len(chain.links) == 4
    assert chain.closed
    assert chain.length == pytest.approx(16.0)


def test_reversed_link_is_flipped():
    paths = [
        Line((0.0, 0.0), (4.0, 0.0)),
        Line((4.0, 3.0), (4.0, 0.0)),
        Line((4.0, 3.0), (0.0, 3.0)),
        Line((0.0, 3.0), (0.0, 0.0)),
    ]
    (chain,) = find_chains(_model(*paths))
    assert chain.closed
    assert [link.reversed for link in chain.links] == [False, True, False, False]
    assert all(a.end == b.start for a, b in zip(chain.links, chain.links[1:]))


def test_chain_extends_backwards():
    # the search starts at the middle segment and must grow at both ends
    paths = [Line((5.0, 0.0), (10.0, 0.0)), Line((0.0, 0.0), (5.0, 0.0)), Line((10.0, 0.0), (15.0, 0.0))]
    (chain,) = find_chains(_model(*paths))
    assert len(chain.links) == 3
    assert chain.start == (0.0, 0.0)
    assert chain.end == (15.0, 0.0)


def test_tolerance_joins_near_endpoints():
    paths = [Line((0.0, 0.0), (5.0, 0.0)), Line((5.03, 0.0), (9.0, 0.0))]
    assert len(find_chains(_model(*paths))) == 1
    assert len(find_chains(_model(*paths), tolerance=0.01)) == 2


def test_straightest_continuation_wins():
    paths = [
        Line((0.0, 0.0), (5.0, 0.0)),
        Line((5.0, 0.0), (5.0, 5.0)),
        Line((5.0, 0.0), (10.0, 0.0)),
    ]
    chains = find_chains(_model(*paths))
    longest = max(chains, key=lambda c: len(c.links))
    assert [link.path for link in longest.links] == [paths[0], paths[2]]


def test_circle_is_closed_single_link():
    (chain,) = find_chains(_model(Circle((0.0, 0.0), 3.0)))
    assert chain.closed and len(chain.links) == 1


def test_half_arcs_close_a_loop():
    paths = [Arc((0.0, 0.0), 2.0, 0.0, 180.0), Arc((0.0, 0.0), 2.0, 180.0, 360.0)]
    (chain,) = find_chains(_model(*paths))
    assert chain.closed
    assert len(chain.polygon(0.5)) > 4


def test_zero_length_line_is_its_own_chain():
    chains = find_chains(_model(Line((1.0, 1.0), (1.0, 1.0)), Line((1.0, 1.0), (4.0, 1.0))))
    assert len(chains) == 2


class TestFrames:
    def test_nested_model_reports_absolute_points(self):
        child = GeometryModel(origin=(10.0, 10.0)).add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        root = GeometryModel(origin=(5.0, 0.0), models={"c": child})
        (chain,) = find_chains(root)
        assert chain.start == (15.0, 10.0)

    def test_sub_model_with_parent_offset(self):
        child = GeometryModel(origin=(10.0, 10.0)).add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        (chain,) = find_chains(child, offset=(5.0, 0.0))
        assert chain.start == (15.0, 10.0)
        assert chain.links[0].route == ()

    def test_shallow_ignores_children(self):
        child = GeometryModel().add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        root = GeometryModel(models={"c": child}).add_paths([Line((5.0, 5.0), (6.0, 5.0))])
        assert len(find_chains(root, shallow=True)) == 1
        assert len(find_chains(root)) == 2

    def test_hidden_children_can_be_skipped(self):
        child = GeometryModel(visible=False).add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        root = GeometryModel(models={"c": child})
        assert len(find_chains(root)) == 1
        assert find_chains(root, include_hidden=False) == []
