"""Transition telemetry helpers (JSONL records)."""

from .jsonl import append_jsonl, tail_jsonl
from .transition_log import TransitionLogger

__all__ = ["append_jsonl", "tail_jsonl", "TransitionLogger"]
