"""In-process stand-in for the CAD application.

Simulates the automation surface closely enough to exercise routing without
the real application installed: direct calls with more positional arguments
than the bridge can marshal come back as None, scripts are read from disk and
"executed" by procedure name, and failures can be injected per handle.
"""

import itertools
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.adapters.handle import MAX_MARSHALED_ARGS
from src.models.data_models import FeatureDescriptor


FEATURE_METHODS: Dict[str, Tuple[str, str]] = {
    "FeatureExtrusion2": ("Boss-Extrude", "Extrusion"),
    "FeatureExtrusion3": ("Boss-Extrude", "Extrusion"),
    "FeatureRevolve2": ("Revolve", "Revolve"),
    "InsertProtrusionSwept4": ("Sweep", "Sweep"),
    "InsertProtrusionLoft": ("Loft", "Loft"),
    "InsertProtrusionLoft3": ("Loft", "Loft"),
}

SCRIPT_PROCEDURES: Dict[str, Tuple[str, str]] = {
    "CreateExtrusion": ("Boss-Extrude", "Extrusion"),
    "CreateRevolve": ("Revolve", "Revolve"),
    "CreateSweep": ("Sweep", "Sweep"),
    "CreateLoft": ("Loft", "Loft"),
}

_ids = itertools.count(1)


@dataclass
class SimulatedCall:
    """One recorded interaction with the simulated application."""
    kind: str
    name: str
    args: Tuple[Any, ...] = ()
    script_text: Optional[str] = None
    module: Optional[str] = None


@dataclass
class SimulationProfile:
    """Failure injection switches for a simulated handle."""
    max_args: int = MAX_MARSHALED_ARGS
    latency: float = 0.0
    fail_direct: bool = False
    fail_scripts: bool = False
    connection_failures: int = 0
    connection_down: bool = False


class SimulatedHandle:
    """
    Simulated CAD application session.

    Implements ExternalHandle. Records every call so tests can assert on
    what reached the application.
    """

    def __init__(self, handle_id: Optional[str] = None, profile: Optional[SimulationProfile] = None):
        self.handle_id = handle_id or f"sim-{next(_ids)}"
        self.profile = profile or SimulationProfile()
        self.calls: List[SimulatedCall] = []
        self.features: List[FeatureDescriptor] = []
        self.connected = True
        self.max_concurrency = 0
        self._active = 0
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def call(self, method: str, args: Sequence[Any]) -> Any:
        with self._enter():
            self.calls.append(SimulatedCall(kind="call", name=method, args=tuple(args)))
            if len(args) > self.profile.max_args:
                return None
            if self.profile.fail_direct:
                return None
            member = method.rsplit(".", 1)[-1]
            if member in FEATURE_METHODS:
                return self._create_feature(*FEATURE_METHODS[member])
            return True

    def run_script(self, path: str, module: str, procedure: str) -> bool:
        with self._enter():
            text = Path(path).read_text(encoding="utf-8")
            self.calls.append(SimulatedCall(
                kind="script", name=procedure, script_text=text, module=module
            ))
            if self.profile.fail_scripts:
                return False
            if not re.search(rf"^Sub {re.escape(procedure)}\(\)", text, re.MULTILINE):
                return False
            prefix, feature_type = SCRIPT_PROCEDURES.get(procedure, ("Macro", "Macro"))
            self._create_feature(prefix, feature_type)
            return True

    def last_feature(self) -> Optional[FeatureDescriptor]:
        with self._lock:
            return self.features[-1] if self.features else None

    def is_healthy(self) -> bool:
        return self.connected and not self.profile.connection_down

    def disconnect(self) -> None:
        self.connected = False

    @property
    def direct_calls(self) -> List[SimulatedCall]:
        return [c for c in self.calls if c.kind == "call"]

    @property
    def scripts(self) -> List[SimulatedCall]:
        return [c for c in self.calls if c.kind == "script"]

    def _create_feature(self, prefix: str, feature_type: str) -> FeatureDescriptor:
        with self._lock:
            index = self._counters.get(prefix, 0) + 1
            self._counters[prefix] = index
            feature = FeatureDescriptor(name=f"{prefix}{index}", feature_type=feature_type)
            self.features.append(feature)
            return feature

    def _enter(self) -> "_ActiveCall":
        if not self.connected:
            raise ConnectionError(f"{self.handle_id} is disconnected")
        if self.profile.connection_down:
            raise ConnectionError(f"{self.handle_id}: application not responding")
        with self._lock:
            if self.profile.connection_failures > 0:
                self.profile.connection_failures -= 1
                raise ConnectionError(f"{self.handle_id}: RPC server unavailable")
        return _ActiveCall(self)


class _ActiveCall:
    """Tracks concurrent use of a handle and applies simulated latency."""

    def __init__(self, handle: SimulatedHandle):
        self.handle = handle

    def __enter__(self):
        with self.handle._lock:
            self.handle._active += 1
            self.handle.max_concurrency = max(self.handle.max_concurrency, self.handle._active)
        if self.handle.profile.latency:
            time.sleep(self.handle.profile.latency)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        with self.handle._lock:
            self.handle._active -= 1
        return False


class SimulatedApplication:
    """Factory producing simulated handles that share one failure profile."""

    def __init__(self, profile: Optional[SimulationProfile] = None):
        self.profile = profile or SimulationProfile()
        self.handles: List[SimulatedHandle] = []
        self.connect_failures = 0

    def connect(self) -> SimulatedHandle:
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionError("Could not attach to the CAD application")
        handle = SimulatedHandle(
            handle_id=f"sim-{len(self.handles) + 1}",
            profile=self.profile,
        )
        self.handles.append(handle)
        return handle

    @property
    def all_calls(self) -> List[SimulatedCall]:
        return [c for h in self.handles for c in h.calls]
