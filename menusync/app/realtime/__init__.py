"""Realtime fan-out and external change handling."""

from .hub import BroadcastHub, Subscriber
from .listener import ChangeListener, change_notice

__all__ = ["BroadcastHub", "ChangeListener", "Subscriber", "change_notice"]
