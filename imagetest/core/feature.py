"""Feature resources: test steps run inside a harness sandbox."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from imagetest.core.diagnostics import Diagnostics
from imagetest.core.lifecycle import PhaseResult
from imagetest.core.provider import ProviderStore
from imagetest.core.timeouts import Deadline, run_with_deadline
from imagetest.exceptions import ImagetestError, InventoryError
from imagetest.inventory import Feature, Harness

logger = logging.getLogger(__name__)


@dataclass
class FeatureModel:
    """A declared feature.

    Attributes
    ----------
    name : str
        Feature name, unique per harness
    harness : dict[str, Any]
        Output state of the harness the feature runs against
    labels : dict[str, str]
        Feature labels matched against the runtime label filter
    steps : list[str]
        Shell commands run in order inside the sandbox
    timeout : float | None
        Upper bound in seconds for all steps, None for no bound
    """

    name: str
    harness: dict[str, Any]
    labels: dict[str, str] = field(default_factory=dict)
    steps: list[str] = field(default_factory=list)
    timeout: float | None = None

    @property
    def harness_id(self) -> str:
        return self.harness["id"]

    @property
    def seed(self) -> str:
        return self.harness["inventory"]["seed"]

    def state(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "harness": self.harness_id,
            "labels": dict(self.labels),
            "skipped": bool(self.harness.get("skipped", False)),
        }


class FeatureResource:
    """Feature resource.

    Parameters
    ----------
    store : ProviderStore
        Shared provider state for this process
    """

    def __init__(self, store: ProviderStore) -> None:
        self.store = store

    def plan(self, model: FeatureModel) -> PhaseResult:
        """Register the feature against its harness in the inventory."""
        diags = Diagnostics()

        try:
            inventory = self.store.inventory(model.seed)
            added = inventory.add_feature(
                Harness(model.harness_id), Feature(name=model.name, labels=model.labels)
            )
        except (InventoryError, KeyError) as e:
            diags.add_error("failed to add feature", str(e))
            return PhaseResult(state=None, diagnostics=diags)

        if added:
            logger.info(
                "Feature [%s] added to harness [%s]", model.name, model.harness_id
            )
        return PhaseResult(state=model.state(), diagnostics=diags)

    def create(self, model: FeatureModel) -> PhaseResult:
        """Run the feature's steps in the harness sandbox.

        Parameters
        ----------
        model : FeatureModel
            Feature whose ``harness`` state came from a created harness

        Returns
        -------
        PhaseResult
            Feature state, or no state if a step failed

        Raises
        ------
        HarnessNotFoundError
            If no live handle is registered for the harness, which means the
            harness was never created in this process

        Notes
        -----
        ``model.timeout`` bounds all steps together; a step still running when
        it expires is abandoned and the feature fails.
        """
        diags = Diagnostics()

        if model.harness.get("skipped"):
            diags.add_warning(
                f"skipping feature [{model.name}]",
                f"harness [{model.harness_id}] was skipped",
            )
            return PhaseResult(state=model.state(), diagnostics=diags)

        handle = self.store.harnesses.require(model.harness_id)

        deadline = None
        if model.timeout is not None:
            deadline = Deadline(model.timeout, name=f"feature [{model.name}]")

        logger.info("Running feature [%s] on harness [%s]", model.name, model.harness_id)
        for step in model.steps:
            try:
                if deadline is None:
                    output = handle.run(step, None)
                else:
                    output = run_with_deadline(
                        lambda d, step=step: handle.run(step, d), deadline
                    )
            except ImagetestError as e:
                diags.add_error(f"feature [{model.name}] step failed", str(e))
                return PhaseResult(state=None, diagnostics=diags)
            for line in output.splitlines():
                logger.info("%s", line, extra={"stream": "stdout", "feature": model.name})

        return PhaseResult(state=model.state(), diagnostics=diags)

    def delete(self, state: dict[str, Any]) -> PhaseResult:
        return PhaseResult(state=None)
