"""Complexity analysis: how many positional arguments will this operation need?

Each operation family has a base weight (the arguments every call needs) and
fixed increments for optional features that widen the underlying call. The
sum, the effective parameter count, is compared against the marshaling
ceiling to pick a strategy.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from src.models.config import AnalyzerSettings
from src.models.data_models import ComplexityReport, OperationRequest, Simplification, Strategy
from src.models.errors import ParameterValidationError
from src.models.operations import validate_parameters


# Positional parameter counts of known automation methods
KNOWN_METHODS: Dict[str, int] = {
    "FeatureExtrusion": 13,
    "FeatureExtrusion2": 16,
    "FeatureExtrusion3": 23,
    "FeatureRevolve": 10,
    "FeatureRevolve2": 12,
    "InsertProtrusionSwept": 10,
    "InsertProtrusionSwept4": 14,
    "InsertProtrusionLoft": 12,
    "InsertProtrusionLoft3": 17,
    "FeatureLinearPattern4": 18,
    "FeatureCircularPattern": 15,
    "CreateLine": 6,
    "CreateCircle": 4,
    "InsertSketch": 1,
}


def _effective(family: str, params: Mapping[str, Any]) -> Mapping[str, Any]:
    """Parameters as the validated model will execute them, or as given when they do not validate."""
    try:
        model = validate_parameters(family, params)
    except ParameterValidationError:
        return params
    return params if model is None else model.model_dump(by_alias=True)


def _lookup(params: Mapping[str, Any], name: str) -> Any:
    """Read a parameter by its camelCase name, falling back to snake_case."""
    if name in params:
        return params[name]
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in name)
    return params.get(snake)


def _flag(name: str) -> Callable[[Mapping[str, Any]], bool]:
    def enabled(params: Mapping[str, Any]) -> bool:
        return _lookup(params, name) is True
    return enabled


def _cleared(name: str) -> Callable[[Mapping[str, Any]], bool]:
    def enabled(params: Mapping[str, Any]) -> bool:
        return _lookup(params, name) is False
    return enabled


def _nonzero(name: str) -> Callable[[Mapping[str, Any]], bool]:
    def enabled(params: Mapping[str, Any]) -> bool:
        value = _lookup(params, name)
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value != 0
    return enabled


def _non_blind(params: Mapping[str, Any]) -> bool:
    value = _lookup(params, "endCondition")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return False
    return value not in ("Blind", 0)


def _bidirectional_revolve(params: Mapping[str, Any]) -> bool:
    return _lookup(params, "direction") in ("Both", 2) or _lookup(params, "bothDirections") is True


def _guide_count(params: Mapping[str, Any]) -> int:
    guides = _lookup(params, "guideCurves")
    if isinstance(guides, (list, tuple)):
        return len(guides)
    return 0


@dataclass(frozen=True)
class FeatureWeight:
    """An optional feature and the arguments it adds when enabled."""
    name: str
    suggestion: str
    weight: int = 0
    enabled: Optional[Callable[[Mapping[str, Any]], bool]] = None
    measure: Optional[Callable[[Mapping[str, Any]], int]] = None
    requires: Optional[str] = None

    def contribution(self, params: Mapping[str, Any]) -> int:
        if self.measure is not None:
            return self.measure(params)
        return self.weight if self.enabled(params) else 0


@dataclass(frozen=True)
class FamilyProfile:
    """Weights for one operation family."""
    family: str
    base: int
    features: Tuple[FeatureWeight, ...] = ()
    always_script: bool = False


THIN_WALL = FeatureWeight(
    "thinFeature", "Create a solid feature and shell it afterwards instead of a thin feature",
    weight=4, enabled=_flag("thinFeature"),
)

PROFILES: Dict[str, FamilyProfile] = {
    "extrude": FamilyProfile("extrude", 6, (
        FeatureWeight("bothDirections", "Extrude one direction and mirror the feature",
                      weight=2, enabled=_flag("bothDirections")),
        FeatureWeight("draft", "Add the draft as a separate draft feature",
                      weight=2, enabled=_nonzero("draft")),
        THIN_WALL,
        FeatureWeight("capEnds", "Leave the thin feature open and cap it separately",
                      weight=2, enabled=_flag("capEnds"), requires="thinFeature"),
        FeatureWeight("endCondition", "Use a Blind end condition with an explicit depth",
                      weight=1, enabled=_non_blind),
        FeatureWeight("merge", "Merge the result and split bodies afterwards",
                      weight=3, enabled=_cleared("merge")),
        FeatureWeight("offsetReverse", "Offset the start plane with a reference plane instead",
                      weight=3, enabled=_flag("offsetReverse")),
        FeatureWeight("translateSurface", "Offset the end surface without translating it",
                      weight=3, enabled=_flag("translateSurface")),
        FeatureWeight("flipSideToCut", "Flip the sketch instead of the side to cut",
                      weight=3, enabled=_flag("flipSideToCut")),
    )),
    "revolve": FamilyProfile("revolve", 6, (
        FeatureWeight("bothDirections", "Revolve one direction with the combined angle",
                      weight=2, enabled=_bidirectional_revolve),
        THIN_WALL,
    )),
    "loft": FamilyProfile("loft", 8, (
        FeatureWeight("guideCurves", "Loft without guide curves and refine the shape afterwards",
                      measure=_guide_count),
        FeatureWeight("close", "Leave the loft open",
                      weight=1, enabled=_flag("close")),
        THIN_WALL,
    )),
    "sweep": FamilyProfile("sweep", 14, always_script=True),
    "sketch_line": FamilyProfile("sketch_line", 6),
    "sketch_circle": FamilyProfile("sketch_circle", 4),
}


class ComplexityAnalyzer:
    """
    Classifies operations into direct, hybrid or script execution.

    Pure and side-effect free; never raises. Parameters are scored after
    schema coercion, so `"true"` counts the same as `True`. Malformed values
    that fail validation are treated as the feature being off, so a request
    the validator will reject still gets a routing decision.
    """

    def __init__(self, settings: Optional[AnalyzerSettings] = None):
        self.settings = settings or AnalyzerSettings()

    def analyze(self, operation: str, parameters: Optional[Mapping[str, Any]] = None) -> ComplexityReport:
        """
        Compute the effective parameter count and strategy for an operation.

        Args:
            operation: Operation family name (case-insensitive)
            parameters: Named parameters as supplied by the caller

        Returns:
            ComplexityReport with strategy, confidence and contributing features
        """
        family = operation.strip().lower() if isinstance(operation, str) else str(operation)
        params = parameters if isinstance(parameters, Mapping) else {}
        params = _effective(family, params)

        if family == "call":
            return self._analyze_call(params)

        profile = PROFILES.get(family)
        if profile is None:
            return ComplexityReport(
                operation=family,
                effective_count=0,
                strategy=Strategy.DIRECT,
                confidence=self.settings.unknown_confidence,
                reason=f"No complexity profile for '{family}'; assuming direct call",
                known=False,
            )

        contributions = self._contributions(profile, params)
        count = profile.base + sum(saves for _, saves in contributions)
        features = tuple(feature.name for feature, _ in contributions)

        if profile.always_script:
            return ComplexityReport(
                operation=family,
                effective_count=count,
                strategy=Strategy.SCRIPT,
                confidence=self.settings.script_confidence,
                reason=f"{family} always requires a generated script",
                features=features,
            )
        return self._classify(family, count, features)

    def advise(
        self,
        operation: Union[str, OperationRequest],
        parameters: Optional[Mapping[str, Any]] = None
    ) -> List[Simplification]:
        """
        Suggest which optional features to drop to avoid the script path.

        Suggestions are ordered heaviest first and stop once the count would
        fit the hybrid ceiling. Nothing is applied; the caller decides.

        Returns:
            Ordered simplifications, empty unless the request is script-bound
            and its family can be simplified at all
        """
        if isinstance(operation, OperationRequest):
            operation, parameters = operation.operation, operation.parameters
        report = self.analyze(operation, parameters)
        profile = PROFILES.get(report.operation)
        if report.strategy is not Strategy.SCRIPT or profile is None or profile.always_script:
            return []

        params = _effective(report.operation, parameters if isinstance(parameters, Mapping) else {})
        contributions = dict((f.name, (f, saves)) for f, saves in self._contributions(profile, params))

        # Dropping a feature also drops the features that depend on it
        candidates = []
        for name, (feature, saves) in contributions.items():
            dependents = [n for n, (f, _) in contributions.items() if f.requires == name]
            total = saves + sum(contributions[n][1] for n in dependents)
            candidates.append((feature, total, dependents))
        candidates.sort(key=lambda c: c[1], reverse=True)

        count = report.effective_count
        removed = set()
        advice: List[Simplification] = []
        for feature, saves, dependents in candidates:
            if count <= self.settings.hybrid_max_parameters:
                break
            if feature.name in removed:
                continue
            saves -= sum(contributions[n][1] for n in dependents if n in removed)
            count -= saves
            removed.add(feature.name)
            removed.update(dependents)
            advice.append(Simplification(
                feature=feature.name,
                suggestion=feature.suggestion,
                saves=saves,
                resulting_count=count,
            ))
        return advice

    def complex_methods(self) -> List[str]:
        """Known methods too wide to call directly."""
        return sorted(
            name for name, count in KNOWN_METHODS.items()
            if count > self.settings.hybrid_max_parameters
        )

    def method_parameter_count(self, method: str) -> Optional[int]:
        return KNOWN_METHODS.get(method.rsplit(".", 1)[-1])

    def _analyze_call(self, params: Mapping[str, Any]) -> ComplexityReport:
        method = params.get("method")
        args = params.get("args")
        count = len(args) if isinstance(args, (list, tuple)) else 0
        known = self.method_parameter_count(method) if isinstance(method, str) else None

        if known is not None and known > self.settings.hybrid_max_parameters:
            return ComplexityReport(
                operation="call",
                effective_count=max(count, known),
                strategy=Strategy.SCRIPT,
                confidence=self.settings.script_confidence,
                reason=f"{method} takes {known} parameters and always requires a generated script",
            )
        return self._classify("call", count, ())

    def _classify(self, family: str, count: int, features: Tuple[str, ...]) -> ComplexityReport:
        settings = self.settings
        if count <= settings.direct_max_parameters:
            strategy, confidence = Strategy.DIRECT, settings.direct_confidence
            reason = f"{count} parameters fit a direct call"
        elif count <= settings.hybrid_max_parameters:
            strategy, confidence = Strategy.HYBRID, settings.hybrid_confidence
            reason = f"{count} parameters are near the marshaling limit; direct call with script fallback"
        else:
            strategy, confidence = Strategy.SCRIPT, settings.script_confidence
            reason = f"{count} parameters exceed the marshaling limit of {settings.hybrid_max_parameters}"
        return ComplexityReport(
            operation=family,
            effective_count=count,
            strategy=strategy,
            confidence=confidence,
            reason=reason,
            features=features,
        )

    @staticmethod
    def _contributions(profile: FamilyProfile, params: Mapping[str, Any]) -> List[Tuple[FeatureWeight, int]]:
        contributions = []
        for feature in profile.features:
            saves = feature.contribution(params)
            if saves > 0:
                contributions.append((feature, saves))
        return contributions
