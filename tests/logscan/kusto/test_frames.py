"""Tests for RowSetReader."""

from logscan.kusto.frames import RowSetReader


def test_fetchone_walks_current_set():
    reader = RowSetReader([[["a"], ["b"]]])

    assert reader.fetchone() == ["a"]
    assert reader.fetchone() == ["b"]
    assert reader.fetchone() is None
    assert reader.rows_read == 2


def test_nextset_advances():
    reader = RowSetReader([[["a"]], [["b"], ["c"]]])

    assert reader.fetchone() == ["a"]
    assert reader.fetchone() is None
    assert reader.nextset() is True
    assert reader.fetchone() == ["b"]
    assert reader.nextset() is False


def test_drain_consumes_every_set():
    reader = RowSetReader([[["a"], ["b"]], [], [["c"]]])
    reader.fetchone()

    assert reader.drain() == 2
    assert reader.fetchone() is None
    assert reader.nextset() is False
    assert reader.rows_read == 3


def test_empty_reader():
    reader = RowSetReader([])

    assert reader.fetchone() is None
    assert reader.drain() == 0


def test_close():
    reader = RowSetReader([[["a"]]])
    reader.close()

    assert reader.closed
    assert reader.fetchone() is None
    assert reader.nextset() is False
