"""Base classes for the keezer controller."""

from keezer.base.entity import Entity
from keezer.base.process import NS_PER_SECOND, Process, seconds_to_ns
from keezer.base.runner import FastRunner, Runner, StandardRunner, TimeSource
from keezer.base.state import ControllerState, Quality, Reading

__all__ = [
    "NS_PER_SECOND",
    "ControllerState",
    "Entity",
    "FastRunner",
    "Process",
    "Quality",
    "Reading",
    "Runner",
    "StandardRunner",
    "TimeSource",
    "seconds_to_ns",
]
