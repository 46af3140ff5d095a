"""
PayMo payment ingestion and export.

Parses batch/stream payment CSVs into DataFrames, feeds them through a
PaymentNetwork, and writes the tiered verdict files and the Graphviz view
of the network.

A payment record is one line of five comma separated fields:

    time, id1, id2, amount, message
    2016-11-02 09:49:29, 52575, 1120, 25.32, Spam

The message is everything after the fourth comma, so it may contain commas
of its own. Records that cannot name two distinct, well-formed users are
dropped and logged; they never reach the network.
"""

import io
import json
import logging
import os
from typing import Iterable, Optional, Union

import pandas as pd

import config
from network import PairResult, PaymentNetwork

logger = logging.getLogger(__name__)

COLUMNS = ["time", "id1", "id2", "amount", "message"]

_INTEGER_ID = r"[+-]?\d+"


class PaymentFileError(ValueError):
    """Raised when a payment file cannot be read at all."""


# ===========================================================================
# 1. PARSING
# ===========================================================================

def _read_text(source) -> str:
    try:
        if hasattr(source, "read"):
            data = source.read()
            return data.decode("utf-8") if isinstance(data, bytes) else data
        with open(source, encoding="utf-8") as fh:
            return fh.read()
    except UnicodeDecodeError as e:
        raise PaymentFileError(f"Payment file is not valid UTF-8: {e}") from e


def read_payments(source: Union[str, os.PathLike, io.IOBase],
                  numeric_ids: Optional[bool] = None) -> pd.DataFrame:
    """
    Load a PayMo payment CSV into a DataFrame with columns ``COLUMNS``.

    ``source`` is a path or an open text/binary file. The first line is the
    header and is skipped. Blank lines are ignored. When ``numeric_ids`` is
    true (the default from config) ids must be integers and are returned as
    Python ints; otherwise they are kept as stripped strings.

    Line numbers of rejected records are listed in
    ``frame.attrs["rejected_lines"]``.
    """
    if numeric_ids is None:
        numeric_ids = config.NUMERIC_IDS

    text = _read_text(source)
    if not text.strip():
        raise PaymentFileError("Payment file is empty (no header line)")
    # Only newlines end a record; messages may hold other line-break characters.
    lines = text.replace("\r\n", "\n").split("\n")

    # Index i holds file line i + 2 (line 1 is the header).
    records = pd.Series(lines[1:], dtype="object")
    records = records[records.str.strip() != ""]
    if records.empty:
        payments = pd.DataFrame(columns=COLUMNS)
        payments.attrs["rejected_lines"] = []
        return payments

    fields = records.str.split(",", n=4, expand=True).reindex(columns=range(5))
    fields.columns = COLUMNS
    for col in COLUMNS:
        fields[col] = fields[col].fillna("").astype(str).str.strip()

    # time, id1, id2 and amount must all be present; the message may be empty.
    truncated = records.str.count(",") < 3
    if numeric_ids:
        well_formed = (fields["id1"].str.fullmatch(_INTEGER_ID).astype(bool)
                       & fields["id2"].str.fullmatch(_INTEGER_ID).astype(bool))
    else:
        well_formed = (fields["id1"] != "") & (fields["id2"] != "")
    bad_id = ~well_formed & ~truncated

    payments = fields[~(truncated | bad_id)].copy()
    if numeric_ids:
        payments["id1"] = payments["id1"].map(int)
        payments["id2"] = payments["id2"].map(int)
    self_payment = payments["id1"] == payments["id2"]

    rejected = []
    for reason, mask in (
        ("truncated record", truncated),
        ("invalid user id", bad_id),
        ("payer and payee are the same user", self_payment),
    ):
        for idx in mask[mask].index:
            logger.warning("Rejected payment on line %d: %s", idx + 2, reason)
            rejected.append(int(idx) + 2)

    payments = payments[~self_payment].reset_index(drop=True)
    payments.attrs["rejected_lines"] = sorted(rejected)
    logger.info("Read %d payment records (%d rejected)", len(payments), len(rejected))
    return payments


# ===========================================================================
# 2. BATCH / STREAM PHASES
# ===========================================================================

def _pairs(payments: pd.DataFrame):
    # tolist() hands back Python scalars rather than numpy ones.
    return zip(payments["id1"].tolist(), payments["id2"].tolist())


def build_network(network: PaymentNetwork, payments: pd.DataFrame) -> int:
    """Load historical payments as edges. Returns the number of new edges."""
    added = 0
    for id1, id2 in _pairs(payments):
        added += network.ingest_known_relationship(id1, id2)
    logger.info(
        "Built payment network: %d users, %d relationships",
        network.node_count, network.edge_count,
    )
    return added


def process_stream(network: PaymentNetwork, payments: pd.DataFrame) -> list[PairResult]:
    """Grade streamed payments strictly in file order."""
    return [network.process_pair(id1, id2) for id1, id2 in _pairs(payments)]


def results_frame(results: Iterable[PairResult], thresholds: Iterable[int]) -> pd.DataFrame:
    """Tabulate stream results: one row per payment, one verdict column per threshold."""
    thresholds = list(thresholds)
    rows = []
    for r in results:
        row = {"id1": r.uid_a, "id2": r.uid_b, "distance": r.distance, "existing_link": r.linked}
        for t, verdict in zip(thresholds, r.verdicts):
            row[f"verdict_{t}"] = verdict.value
        rows.append(row)
    columns = ["id1", "id2", "distance", "existing_link"] + [f"verdict_{t}" for t in thresholds]
    frame = pd.DataFrame(rows, columns=columns)
    frame["distance"] = pd.array(frame["distance"].tolist(), dtype="Int64")
    return frame


# ===========================================================================
# 3. OUTPUT
# ===========================================================================

def write_verdicts(results: list[PairResult], output_dir: Union[str, os.PathLike],
                   tiers: int) -> list[str]:
    """Write ``output1.txt`` .. ``output{tiers}.txt``, one verdict per line."""
    os.makedirs(output_dir, exist_ok=True)
    paths = []
    for tier in range(tiers):
        path = os.path.join(output_dir, f"output{tier + 1}.txt")
        with open(path, "w", encoding="utf-8") as fh:
            fh.writelines(f"{r.verdicts[tier].value}\n" for r in results)
        paths.append(path)
    return paths


def _dot_id(uid) -> str:
    if isinstance(uid, int):
        return str(uid)
    return json.dumps(str(uid))


def to_dot(network: PaymentNetwork) -> str:
    """Render the network in Graphviz DOT, one arrow per relationship."""
    lines = [
        "digraph A {",
        "  rankdir=LR",
        'size="5,3"',
        'ratio="fill"',
        'edge[style="bold"]',
        'node[shape="oval"]',
    ]
    for uid_a, uid_b in network.edges():
        lines.append(f"{_dot_id(uid_a)} -> {_dot_id(uid_b)}[label=1]")
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_dot(network: PaymentNetwork, path: Union[str, os.PathLike]) -> None:
    directory = os.path.dirname(os.fspath(path))
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(to_dot(network))
