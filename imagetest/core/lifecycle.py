"""Harness resource lifecycle: plan, skip-or-create, read, update, delete."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from docker import errors as docker_errors

from imagetest.constants import DEFAULT_HARNESS_CREATE_TIMEOUT_SECONDS, HarnessStatus
from imagetest.core.diagnostics import Diagnostics
from imagetest.core.provider import ProviderStore
from imagetest.core.registry import HarnessHandle
from imagetest.core.skip import should_skip
from imagetest.core.timeouts import Deadline, run_with_deadline
from imagetest.exceptions import (
    EncodeError,
    HarnessSetupError,
    ImagetestError,
    InvalidInputError,
    InventoryError,
)
from imagetest.harnesses.k3s.harness import K3sHarness
from imagetest.harnesses.k3s.model import HarnessK3sModel
from imagetest.harnesses.k3s.options import build_bootstrap_spec
from imagetest.harnesses.k3s.spec import BootstrapSpec
from imagetest.inventory import Harness

logger = logging.getLogger(__name__)

HandleFactory = Callable[[str, Any, BootstrapSpec, Any], HarnessHandle]


@dataclass
class PhaseResult:
    """Outcome of one lifecycle phase.

    Attributes
    ----------
    state : dict[str, Any] | None
        State to persist, None when nothing may be persisted
    diagnostics : Diagnostics
        Errors and warnings raised during the phase
    status : HarnessStatus | None
        Lifecycle state reached
    """

    state: dict[str, Any] | None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    status: HarnessStatus | None = None

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_error()


class HarnessResource:
    """Behaviour shared by every harness kind.

    Parameters
    ----------
    store : ProviderStore
        Shared provider state for this process
    """

    def __init__(self, store: ProviderStore) -> None:
        self.store = store

    def plan(self, model: HarnessK3sModel, prior_state: dict[str, Any] | None = None) -> PhaseResult:
        """Compute the harness identifier and add the harness to its inventory.

        Existing prior state (for example a re-plan ahead of a destroy) is
        returned untouched; it is not reconciled.

        Parameters
        ----------
        model : HarnessK3sModel
            Declared harness; ``model.id`` is set on success
        prior_state : dict[str, Any] | None
            Previously persisted state, if any

        Returns
        -------
        PhaseResult
            Planned state, or diagnostics describing why planning failed
        """
        if prior_state is not None:
            return PhaseResult(state=prior_state)

        diags = Diagnostics()

        # {name}-{encoded seed} is prefixed onto the Docker objects a
        # harness creates, so it stays readable.
        try:
            harness_id = self.store.encoder.harness_id(model.name, model.seed)
        except EncodeError as e:
            diags.add_error("failed to add harness", f"encoding harness id: {e}")
            return PhaseResult(state=None, diagnostics=diags)

        model.id = harness_id

        try:
            added = self.store.inventory(model.seed).add_harness(Harness(harness_id))
        except InventoryError as e:
            diags.add_error("failed to add harness", str(e))
            return PhaseResult(state=None, diagnostics=diags)

        if added:
            logger.info("Harness [%s] added to inventory", harness_id)

        return PhaseResult(state=model.state(), diagnostics=diags, status=HarnessStatus.PLANNED)

    def should_skip(self, model: HarnessK3sModel, diags: Diagnostics) -> bool:
        """Evaluate the runtime label filter against the harness's features.

        Only features already registered in the inventory are considered.
        A warning naming the harness is added when it will be skipped.
        """
        try:
            features = self.store.inventory(model.seed).get_features(Harness(model.id))
        except InventoryError as e:
            diags.add_error("failed to get features from harness", str(e))
            return False

        skip = should_skip(self.store.labels, features)
        if skip:
            diags.add_warning(
                f"skipping harness [{model.id}] creation",
                "given provider runtime labels do not match feature labels",
            )
        return skip


class K3sHarnessResource(HarnessResource):
    """k3s harness resource.

    Parameters
    ----------
    store : ProviderStore
        Shared provider state for this process
    handle_factory : HandleFactory | None
        Builds the live handle from ``(id, docker client, spec, keychain)``;
        defaults to ``K3sHarness``
    teardown : Callable[[dict[str, Any]], None] | None
        Invoked with prior state on delete; nothing is torn down when unset
    """

    def __init__(
        self,
        store: ProviderStore,
        handle_factory: HandleFactory | None = None,
        teardown: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        super().__init__(store)
        self.handle_factory = handle_factory or K3sHarness
        self.teardown = teardown

    def create(self, model: HarnessK3sModel) -> PhaseResult:
        """Create the harness unless the label policy skips it.

        Parameters
        ----------
        model : HarnessK3sModel
            Planned harness (``model.id`` set)

        Returns
        -------
        PhaseResult
            State with ``skipped`` set, or no state when creation failed
        """
        diags = Diagnostics()

        if model.id is None:
            diags.add_error("failed to create harness", f"harness [{model.name}] was not planned")
            return PhaseResult(state=None, diagnostics=diags)

        skipped = self.should_skip(model, diags)
        if diags.has_error():
            return PhaseResult(state=None, diagnostics=diags)

        model.skipped = skipped
        if skipped:
            return PhaseResult(state=model.state(), diagnostics=diags, status=HarnessStatus.SKIPPED)

        timeout = model.create_timeout
        if timeout is None:
            timeout = DEFAULT_HARNESS_CREATE_TIMEOUT_SECONDS

        try:
            spec = build_bootstrap_spec(model, self.store.k3s_defaults, self.store.cwd)
        except InvalidInputError as e:
            diags.add_error("invalid resource input", str(e))
            return PhaseResult(state=None, diagnostics=diags)

        try:
            harness = self.handle_factory(
                model.id, self.store.docker_client, spec, self.store.keychain
            )
        except (ImagetestError, docker_errors.DockerException) as e:
            diags.add_error("failed to initialize k3s harness", str(e))
            return PhaseResult(state=None, diagnostics=diags)

        self.store.harnesses.set(model.id, harness)

        logger.info("Creating k3s harness [%s]", model.id)

        deadline = Deadline(timeout, name=f"harness [{model.id}] setup")
        try:
            run_with_deadline(harness.setup, deadline)
        except (HarnessSetupError, docker_errors.DockerException) as e:
            diags.add_error("failed to setup harness", str(e))
            return PhaseResult(state=None, diagnostics=diags)

        return PhaseResult(state=model.state(), diagnostics=diags, status=HarnessStatus.CREATED)

    def read(self, state: dict[str, Any]) -> PhaseResult:
        return PhaseResult(state=dict(state))

    def update(self, model: HarnessK3sModel) -> PhaseResult:
        return PhaseResult(state=model.state())

    def delete(self, state: dict[str, Any]) -> PhaseResult:
        """Forget the harness.

        Container teardown is owned by whoever owns the container lifecycle;
        it only happens when a ``teardown`` callable was supplied.
        """
        diags = Diagnostics()
        if self.teardown is not None:
            try:
                self.teardown(dict(state))
            except (ImagetestError, docker_errors.DockerException) as e:
                diags.add_error("failed to delete harness", str(e))
                return PhaseResult(state=state, diagnostics=diags)

        return PhaseResult(state=None, diagnostics=diags, status=HarnessStatus.DELETED)
