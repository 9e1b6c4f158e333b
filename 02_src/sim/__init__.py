"""Scripted customer simulation."""

from .sim import ISim, Sim

__all__ = ["ISim", "Sim"]
