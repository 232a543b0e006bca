"""Adapters to the external CAD application."""

from .handle import MAX_MARSHALED_ARGS, ExternalHandle, HandleFactory
from .simulated import SimulatedApplication, SimulatedHandle, SimulationProfile

__all__ = [
    "MAX_MARSHALED_ARGS",
    "ExternalHandle",
    "HandleFactory",
    "SimulatedApplication",
    "SimulatedHandle",
    "SimulationProfile",
]
