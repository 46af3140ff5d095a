"""
Command-line run of the PayMo fraud alert.

Reads the batch payment file, builds the network, grades every payment in
the stream file in order, and writes one verdict file per trust threshold
plus a Graphviz view of the final network.
"""

import argparse
import logging
import sys

import config
from ingest import (
    PaymentFileError,
    build_network,
    process_stream,
    read_payments,
    results_frame,
    write_dot,
    write_verdicts,
)
from network import DISTANCE_METHODS, LINK_KEYINGS, PaymentNetwork

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fraud_alert",
        description="Flag payments between users who are far apart in the payment network.",
    )
    parser.add_argument("--batch", default=config.BATCH_FILE, help="historical payments CSV")
    parser.add_argument("--stream", default=config.STREAM_FILE, help="payments to grade CSV")
    parser.add_argument("--output-dir", default=config.OUTPUT_DIR,
                        help="directory for output1.txt .. outputN.txt")
    parser.add_argument("--dot", default=config.DOT_FILE,
                        help="Graphviz export of the final network ('' to skip)")
    parser.add_argument("--thresholds", type=config.parse_thresholds,
                        default=config.TRUST_THRESHOLDS,
                        help="comma separated degree thresholds, e.g. 1,2,4")
    parser.add_argument("--method", choices=sorted(DISTANCE_METHODS), default=config.DISTANCE_METHOD)
    parser.add_argument("--link-index", choices=sorted(LINK_KEYINGS), default=config.LINK_INDEX)
    parser.add_argument("-v", "--verbose", action="store_true", help="log every graded payment")
    return parser


def _load(path: str, label: str):
    try:
        payments = read_payments(path)
    except (OSError, PaymentFileError) as e:
        print(f"Error while reading the *{label}* payment file ({e}). Aborting.", file=sys.stderr)
        return None
    print(f"The *{label}* payment file contains {len(payments)} records.")
    return payments


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        network = PaymentNetwork(args.thresholds, method=args.method, link_index=args.link_index)
    except ValueError as e:
        print(f"Invalid engine settings ({e}). Aborting.", file=sys.stderr)
        return 1

    batch = _load(args.batch, "batch")
    if batch is None:
        return 1
    build_network(network, batch)

    stream = _load(args.stream, "stream")
    if stream is None:
        return 1
    results = process_stream(network, stream)

    paths = write_verdicts(results, args.output_dir, len(network.thresholds))
    logger.info("Wrote %s", ", ".join(paths))

    frame = results_frame(results, network.thresholds)
    for t in network.thresholds:
        counts = frame[f"verdict_{t}"].value_counts()
        logger.info("Degree <= %d: %s", t, counts.to_dict())

    if args.dot:
        write_dot(network, args.dot)
        logger.info("Network written to %s", args.dot)

    print("Processing completed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
