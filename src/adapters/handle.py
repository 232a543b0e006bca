"""Typed boundary to the external CAD application."""

from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union, runtime_checkable

from src.models.data_models import FeatureDescriptor


# Empirical ceiling for positional arguments the automation bridge marshals reliably
MAX_MARSHALED_ARGS = 12


@runtime_checkable
class ExternalHandle(Protocol):
    """
    One open session with an instance of the CAD application.

    Every method is synchronous and blocking; a handle supports exactly one
    in-flight call at a time. Implementations decide once, at integration
    time, whether each name is invoked as a property or a method.
    """

    handle_id: str

    def call(self, method: str, args: Sequence[Any]) -> Any:
        """Invoke ``method`` with positional ``args``; None signals failure."""
        ...

    def run_script(self, path: str, module: str, procedure: str) -> bool:
        """Execute ``module.procedure`` from the script at ``path``."""
        ...

    def last_feature(self) -> Optional[FeatureDescriptor]:
        """Most recently created feature of the active document."""
        ...

    def is_healthy(self) -> bool:
        ...

    def disconnect(self) -> None:
        ...


HandleFactory = Callable[[], Union[ExternalHandle, Awaitable[ExternalHandle]]]
