"""Sanity checks for shared constants."""

from cftpipe.constants import CANDIDATE_PORTS, DEFAULT_PORT, HISTORY_LIMIT, LIST_LIMIT


def test_candidate_ports_unique():
    assert len(set(CANDIDATE_PORTS)) == len(CANDIDATE_PORTS)


def test_default_port_is_first_candidate():
    assert CANDIDATE_PORTS[0] == DEFAULT_PORT


def test_limits():
    assert LIST_LIMIT <= HISTORY_LIMIT == 100
