"""CounterSession: one selected device plus the override table, driving classify/read/reset."""

import logging
from typing import Sequence

from .classifier import classify
from .device import DeviceAccess
from .overrides import OverrideTable, get_default_overrides
from .reader import read_all
from .reset import reset
from .types import CounterGroup, Report, ResetTarget

logger = logging.getLogger(__name__)


class CounterSession:
    """
    Context passed explicitly through the counter engine for a single
    invocation. Holds no I/O state of its own; the device is opened and closed
    by the caller.
    """

    def __init__(self, device: DeviceAccess, overrides: OverrideTable | None = None) -> None:
        self.device = device
        self.overrides = overrides if overrides is not None else get_default_overrides()
        self._model: str | None = None

    @property
    def model_name(self) -> str:
        if self._model is None:
            self._model = self.device.model_name
        return self._model

    def classify(
        self,
        explicit_addresses: Sequence[int] | None = None,
        show_ambiguous: bool = False,
    ) -> list[CounterGroup]:
        return classify(
            self.device.spec,
            self.model_name,
            explicit_addresses,
            overrides=self.overrides,
            show_ambiguous=show_ambiguous,
        )

    def report(
        self,
        explicit_addresses: Sequence[int] | None = None,
        show_ambiguous: bool = False,
    ) -> Report:
        """Classify then read every group; read failures stay inside their group."""
        groups = self.classify(explicit_addresses, show_ambiguous)
        logger.debug("Reading %d counter groups for %s", len(groups), self.model_name)
        return Report(model=self.model_name, groups=tuple(read_all(self.device, groups)))

    def reset(self, target: ResetTarget) -> bool:
        return reset(self.device, target)
