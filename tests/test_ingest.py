"""Tests for PayMo CSV ingestion, verdict files and the Graphviz export."""

import io

import pytest

from ingest import (
    COLUMNS,
    PaymentFileError,
    build_network,
    process_stream,
    read_payments,
    results_frame,
    to_dot,
    write_dot,
    write_verdicts,
)
from network import PaymentNetwork

BATCH = """time, id1, id2, amount, message
2016-11-02 09:49:29, 52575, 1120, 25.32, Spam
2016-11-02 09:49:29, 1120, 3, 10.00, rent, utilities

2016-11-02 09:49:30, 3, 77, 14.50, 🍕
"""

STREAM = """time, id1, id2, amount, message
2016-11-02 10:00:00, 52575, 3, 1.00, hi
2016-11-02 10:00:01, 52575, 3, 1.00, again
2016-11-02 10:00:02, 52575, 8888, 9.99, who?
"""


def test_read_payments_parses_fields():
    frame = read_payments(io.StringIO(BATCH))
    assert list(frame.columns) == COLUMNS
    assert len(frame) == 3
    assert frame["id1"].tolist() == [52575, 1120, 3]
    assert frame["id2"].tolist() == [1120, 3, 77]
    assert frame.loc[1, "message"] == "rent, utilities"
    assert frame.loc[0, "time"] == "2016-11-02 09:49:29"
    assert frame.loc[2, "amount"] == "14.50"
    assert frame.attrs["rejected_lines"] == []


def test_read_payments_accepts_paths_and_bytes(tmp_path):
    path = tmp_path / "batch_payment.csv"
    path.write_text(BATCH, encoding="utf-8")
    assert len(read_payments(path)) == 3
    assert len(read_payments(str(path))) == 3
    assert len(read_payments(io.BytesIO(BATCH.encode("utf-8")))) == 3


def test_read_payments_rejects_malformed_records():
    text = (
        "time, id1, id2, amount, message\n"
        "2016-11-02 09:49:29, 1, 2, 1.00, ok\n"          # line 2
        "2016-11-02 09:49:29, abc, 2, 1.00, bad id\n"    # line 3
        "2016-11-02 09:49:29, 7\n"                       # line 4
        "2016-11-02 09:49:29, 5, 5, 1.00, self\n"        # line 5
        "2016-11-02 09:49:29, , 4, 1.00, empty\n"        # line 6
        "2016-11-02 09:49:29, 3.5, 4, 1.00, float\n"     # line 7
        "2016-11-02 09:49:29, 3, 4, 2.00\n"              # line 8, no message
    )
    frame = read_payments(io.StringIO(text))
    assert frame["id1"].tolist() == [1, 3]
    assert frame["id2"].tolist() == [2, 4]
    assert frame.loc[1, "message"] == ""
    assert frame.attrs["rejected_lines"] == [3, 4, 5, 6, 7]


def test_read_payments_never_maps_bad_ids_to_zero():
    frame = read_payments(io.StringIO("h\nt, x, y, 1, m\nt, 0, 1, 1, m\n"))
    assert frame["id1"].tolist() == [0]
    assert frame.attrs["rejected_lines"] == [2]


def test_read_payments_string_ids():
    text = "time, id1, id2, amount, message\nt, ACC_1, ACC_2, 5, m\nt, ACC_1, , 5, m\n"
    frame = read_payments(io.StringIO(text), numeric_ids=False)
    assert frame["id1"].tolist() == ["ACC_1"]
    assert frame["id2"].tolist() == ["ACC_2"]
    assert frame.attrs["rejected_lines"] == [3]


def test_read_payments_header_only():
    frame = read_payments(io.StringIO("time, id1, id2, amount, message\n"))
    assert len(frame) == 0
    assert list(frame.columns) == COLUMNS


def test_read_payments_empty_file_raises():
    with pytest.raises(PaymentFileError):
        read_payments(io.StringIO(""))


def test_batch_then_stream():
    network = PaymentNetwork()
    assert build_network(network, read_payments(io.StringIO(BATCH))) == 3
    results = process_stream(network, read_payments(io.StringIO(STREAM)))

    assert [r.distance for r in results] == [2, 1, None]
    assert [r.linked for r in results] == [False, True, False]
    assert [v.value for v in results[0].verdicts] == ["unverified", "trusted", "trusted"]
    assert network.node_count == 5
    assert network.edge_count == 5


def test_results_frame_columns():
    network = PaymentNetwork()
    build_network(network, read_payments(io.StringIO(BATCH)))
    results = process_stream(network, read_payments(io.StringIO(STREAM)))
    frame = results_frame(results, network.thresholds)

    assert list(frame.columns) == [
        "id1", "id2", "distance", "existing_link", "verdict_1", "verdict_2", "verdict_4",
    ]
    assert frame["distance"].tolist()[:2] == [2, 1]
    assert frame["distance"].isna().tolist() == [False, False, True]
    assert frame["verdict_1"].tolist() == ["unverified", "trusted", "unverified"]


def test_write_verdicts(tmp_path):
    network = PaymentNetwork()
    build_network(network, read_payments(io.StringIO(BATCH)))
    results = process_stream(network, read_payments(io.StringIO(STREAM)))

    out = tmp_path / "paymo_output"
    paths = write_verdicts(results, out, len(network.thresholds))

    assert [p.rsplit("/", 1)[-1] for p in paths] == ["output1.txt", "output2.txt", "output3.txt"]
    assert (out / "output1.txt").read_text().splitlines() == ["unverified", "trusted", "unverified"]
    assert (out / "output2.txt").read_text().splitlines() == ["trusted", "trusted", "unverified"]
    assert (out / "output3.txt").read_text().splitlines() == ["trusted", "trusted", "unverified"]


def test_to_dot_lists_every_relationship():
    network = PaymentNetwork()
    network.ingest_known_relationship(52575, 1120)
    network.ingest_known_relationship(1120, 3)
    dot = to_dot(network)
    lines = dot.splitlines()
    assert lines[0] == "digraph A {"
    assert lines[-1] == "}"
    assert "52575 -> 1120[label=1]" in lines
    assert "1120 -> 3[label=1]" in lines
    assert sum("->" in line for line in lines) == 2


def test_to_dot_quotes_string_ids(tmp_path):
    network = PaymentNetwork()
    network.ingest_known_relationship("ACC 1", "ACC_2")
    assert '"ACC 1" -> "ACC_2"[label=1]' in to_dot(network)

    path = tmp_path / "figs" / "paymo-network.dot"
    write_dot(network, path)
    assert path.read_text(encoding="utf-8") == to_dot(network)


def test_read_payments_non_utf8_raises(tmp_path):
    path = tmp_path / "batch_payment.csv"
    path.write_bytes(b"time, id1, id2, amount, message\nt, 1, 2, 3.00, caf\xe9\n")
    with pytest.raises(PaymentFileError):
        read_payments(path)
    with pytest.raises(PaymentFileError):
        read_payments(io.BytesIO(path.read_bytes()))
