#!/usr/bin/env python3
from __future__ import annotations

import argparse
import fcntl
import os
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, NoReturn, Optional, TextIO, Tuple

from loguru import logger


ROWS = "ABCDEFGHIJKLMNOPQRST"
SEATS_PER_ROW = 8
DEFAULT_STATE_FILE = "reservations.txt"


# ---------------------------
# Data Model
# ---------------------------

@dataclass
class Seat:
    row: str
    number: int
    reserved: bool = False

    def reserve(self) -> None:
        self.reserved = True

    def cancel(self) -> None:
        self.reserved = False

    def __str__(self) -> str:
        return "1" if self.reserved else "0"


SeatMap = Dict[str, List[Seat]]


# ---------------------------
# Seat Helpers
# ---------------------------

def build_row(row: str) -> List[Seat]:
    return [Seat(row=row, number=i) for i in range(SEATS_PER_ROW)]


def build_seat_map() -> SeatMap:
    return {row: build_row(row) for row in ROWS}


def parse_seat(seat: str) -> Tuple[str, int]:
    """Split "A0" into ("A", 0). The row letter is upper-cased, so "a0" names the same seat."""
    s = seat.strip()
    if len(s) < 2:
        raise ValueError(f"Invalid seat: {seat!r}")
    return s[0].upper(), int(s[1:])


def format_row(row: str, seats: List[Seat]) -> str:
    return f"{row}:{''.join(str(s) for s in seats)}"


def parse_row_line(line: str) -> Optional[List[Seat]]:
    """
    Parse one persisted "R:xxxxxxxx" line into a row of seats.
    Returns None for anything malformed.
    """
    parts = line.rstrip("\r\n").split(":")
    if len(parts) != 2 or len(parts[0]) != 1:
        return None
    row, status = parts
    if row not in ROWS:
        return None
    if len(status) != SEATS_PER_ROW or any(ch not in "01" for ch in status):
        return None
    return [Seat(row=row, number=i, reserved=(ch == "1")) for i, ch in enumerate(status)]


# ---------------------------
# Persistence
# ---------------------------

@contextmanager
def locked_file(path: str, mode: str = "r") -> Iterator[TextIO]:
    """Open ``path`` and hold an exclusive lock for the duration of the context."""
    # undecodable bytes become U+FFFD and fail line validation instead of raising
    with open(path, mode, encoding="utf-8", errors="replace") as handle:
        fcntl.flock(handle, fcntl.LOCK_EX)
        try:
            yield handle
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


def load_seat_map(path: str) -> SeatMap:
    if not os.path.exists(path):
        # first run: every row starts free
        return build_seat_map()

    seats: SeatMap = {}
    try:
        with locked_file(path, "r") as f:
            for line in f:
                row_seats = parse_row_line(line)
                if row_seats is None:
                    logger.debug("Skipping malformed state line: {!r}", line)
                    continue
                seats[row_seats[0].row] = row_seats
    except OSError as e:
        logger.warning("Could not load state from {}: {}", path, e)
    return seats


def save_seat_map(seats: SeatMap, path: str) -> None:
    try:
        # "a" creates the file without truncating it before the lock is held
        with locked_file(path, "a") as f:
            f.seek(0)
            f.truncate()
            for row in ROWS:
                row_seats = seats.get(row)
                if row_seats is None:
                    continue
                f.write(format_row(row, row_seats) + "\n")
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.warning("Could not save state to {}: {}", path, e)


# ---------------------------
# Core Service
# ---------------------------

class SeatLedger:
    def __init__(self, seats: SeatMap, state_file: str = DEFAULT_STATE_FILE) -> None:
        self.seats = seats
        self.state_file = state_file
        self._lock = threading.RLock()

    @classmethod
    def load(cls, state_file: str = DEFAULT_STATE_FILE) -> "SeatLedger":
        return cls(seats=load_seat_map(state_file), state_file=state_file)

    def _get_range(self, row: str, start: int, count: int) -> List[Seat]:
        if row not in self.seats:
            raise ValueError(f"Unknown row: {row}")
        if count < 1:
            raise ValueError(f"count must be >= 1 (got {count})")
        row_seats = self.seats[row]
        for i in range(start, start + count):
            if i < 0 or i >= len(row_seats):
                raise ValueError(f"Seat {row}{i} is outside the row")
        return row_seats[start:start + count]

    def book_seats(self, row: str, start: int, count: int) -> bool:
        """
        Reserve seats [start, start+count) in ``row``.
        All-or-nothing: if any seat is taken nothing changes.
        """
        with self._lock:
            try:
                requested = self._get_range(row, start, count)
                for seat in requested:
                    if seat.reserved:
                        raise ValueError(f"Seat not available: {seat.row}{seat.number}")
            except ValueError as e:
                logger.debug("Booking rejected: {}", e)
                return False

            for seat in requested:
                seat.reserve()
            save_seat_map(self.seats, self.state_file)
            logger.info("Booked {}{}..{}{}", row, start, row, start + count - 1)
            return True

    def cancel_seats(self, row: str, start: int, count: int) -> bool:
        """Free seats [start, start+count) in ``row``; every one must be reserved."""
        with self._lock:
            try:
                requested = self._get_range(row, start, count)
                for seat in requested:
                    if not seat.reserved:
                        raise ValueError(f"Seat not reserved: {seat.row}{seat.number}")
            except ValueError as e:
                logger.debug("Cancellation rejected: {}", e)
                return False

            for seat in requested:
                seat.cancel()
            save_seat_map(self.seats, self.state_file)
            logger.info("Cancelled {}{}..{}{}", row, start, row, start + count - 1)
            return True

    def snapshot(self) -> Dict[str, str]:
        # row -> "01100000"
        return {row: "".join(str(s) for s in seats) for row, seats in self.seats.items()}


# ---------------------------
# CLI
# ---------------------------

class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise ValueError(message)


def configure_logging(level: str = "WARNING") -> None:
    # stdout is reserved for SUCCESS / FAIL
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {message}",
    )


def cmd_book(args: argparse.Namespace, ledger: SeatLedger) -> bool:
    row, start = parse_seat(args.seat)
    return ledger.book_seats(row, start, args.count)


def cmd_cancel(args: argparse.Namespace, ledger: SeatLedger) -> bool:
    row, start = parse_seat(args.seat)
    return ledger.cancel_seats(row, start, args.count)


COMMANDS = {
    "BOOK": cmd_book,
    "CANCEL": cmd_cancel,
}


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="seat-reservation",
        description="Theater seat reservation CLI",
        add_help=False,
    )
    parser.add_argument(
        "--state-file",
        default=DEFAULT_STATE_FILE,
        help=f"Path to persisted seat state (default: {DEFAULT_STATE_FILE})",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level for stderr output (default: WARNING)",
    )
    parser.add_argument("action", type=str.upper, choices=sorted(COMMANDS), help="BOOK or CANCEL")
    parser.add_argument("seat", help="Row letter + starting seat index, e.g. A0")
    parser.add_argument("count", type=int, help="Number of contiguous seats")
    return parser


def main(argv: List[str]) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except ValueError:
        print("FAIL")
        return 0

    configure_logging(args.log_level)
    ledger = SeatLedger.load(args.state_file)

    try:
        ok = COMMANDS[args.action](args, ledger)
    except ValueError as e:
        logger.debug("Bad seat argument: {}", e)
        ok = False

    print("SUCCESS" if ok else "FAIL")
    return 0


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
