"""
Synthetic PayMo Payment Generator for Fraud Alert Testing
=========================================================
Writes a batch_payment.csv / stream_payment.csv pair with planted structure
and prints an answer key of what each tier should report.

The batch contains a number of friend circles (dense, connected groups)
plus random payments inside each circle. The stream mixes:
  • repeat payments between users who already paid each other (degree 1)
  • payments inside one circle (a short path, usually within 4 hops)
  • payments to brand-new users (unreachable)
  • payments between different circles (unreachable until linked)
"""

import os
import random
from datetime import datetime, timedelta

# --- Configuration ---
BATCH_FILE = "paymo_input/batch_payment.csv"
STREAM_FILE = "paymo_input/stream_payment.csv"
HEADER = ["time", "id1", "id2", "amount", "message"]
TS_START = datetime(2016, 11, 1, 9, 0, 0)
AMOUNT_MIN, AMOUNT_MAX = 1, 100
MESSAGES = ["Spam", "Pizza night", "rent, utilities", "Uber", "🍕🍺", "thanks!", "tickets, snacks"]


def rand_amount(rng):
    return f"{rng.uniform(AMOUNT_MIN, AMOUNT_MAX):.2f}"


def make_row(rng, ts, id1, id2):
    return [ts.strftime("%Y-%m-%d %H:%M:%S"), id1, id2, rand_amount(rng), rng.choice(MESSAGES)]


def generate_payments(circles=5, circle_size=20, batch_per_circle=60, stream_size=200, seed=42):
    """
    Return (batch_rows, stream_rows, answer_key).

    Circle ``c`` owns user ids ``c*1000 .. c*1000 + circle_size - 1``; each
    circle is made connected with a chain before random extra payments are
    added. Brand-new users in the stream start at 900000.
    """
    rng = random.Random(seed)
    ts = TS_START

    def tick():
        nonlocal ts
        ts += timedelta(seconds=rng.randint(1, 90))
        return ts

    members = [[c * 1000 + i for i in range(circle_size)] for c in range(circles)]
    batch, known = [], set()

    for circle in members:
        for a, b in zip(circle, circle[1:]):
            batch.append(make_row(rng, tick(), a, b))
            known.add(frozenset((a, b)))
        for _ in range(batch_per_circle):
            a, b = rng.sample(circle, 2)
            batch.append(make_row(rng, tick(), a, b))
            known.add(frozenset((a, b)))

    rng.shuffle(batch)

    stream = []
    answer_key = {"repeat": 0, "within_circle": 0, "new_user": 0, "cross_circle": 0}
    new_user = 900000
    for _ in range(stream_size):
        kind = rng.choice(list(answer_key))
        if kind == "repeat":
            a, b = tuple(rng.choice(sorted(known, key=sorted)))
        elif kind == "within_circle":
            a, b = rng.sample(rng.choice(members), 2)
        elif kind == "new_user":
            a, b = rng.choice(rng.choice(members)), new_user
            new_user += 1
        else:
            c1, c2 = rng.sample(range(circles), 2)
            a, b = rng.choice(members[c1]), rng.choice(members[c2])
        answer_key[kind] += 1
        stream.append(make_row(rng, tick(), a, b))

    return batch, stream, answer_key


def write_payments(path, rows):
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(", ".join(HEADER) + "\n")
        for row in rows:
            # PayMo files are not quoted; the message may hold bare commas.
            f.write(", ".join(str(v) for v in row) + "\n")
    return path


if __name__ == "__main__":
    os.makedirs(os.path.dirname(BATCH_FILE), exist_ok=True)
    batch, stream, answer_key = generate_payments()
    write_payments(BATCH_FILE, batch)
    write_payments(STREAM_FILE, stream)

    print(f"✅ Generated {len(batch)} batch payments → {BATCH_FILE}")
    print(f"✅ Generated {len(stream)} stream payments → {STREAM_FILE}")

    print("\n" + "=" * 60)
    print("📋  ANSWER KEY — Planted Stream Payments")
    print("=" * 60)
    print(f"🟢 Repeat payments (trusted at every tier):     {answer_key['repeat']}")
    print(f"🟡 Within one circle (usually trusted at top tier): {answer_key['within_circle']}")
    print(f"🔴 Payments to brand-new users (unverified):    {answer_key['new_user']}")
    print(f"🟠 Across circles (unverified until linked):    {answer_key['cross_circle']}")
    print("=" * 60)
