#!/usr/bin/env python3
"""imagetest - container image test harness orchestration."""

from __future__ import annotations

import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable

for _noisy_module in ["docker", "urllib3"]:
    logging.getLogger(_noisy_module).setLevel(logging.WARNING)

from imagetest.cli.main import main  # noqa: E402
from imagetest.constants import DEFAULT_PARALLELISM, EXIT_ERROR, HarnessStatus  # noqa: E402
from imagetest.core.config import ConfigLoader  # noqa: E402
from imagetest.core.diagnostics import Diagnostics  # noqa: E402
from imagetest.core.feature import FeatureModel, FeatureResource  # noqa: E402
from imagetest.core.lifecycle import HandleFactory, K3sHarnessResource, PhaseResult  # noqa: E402
from imagetest.core.provider import ProviderStore  # noqa: E402
from imagetest.core.skip import should_skip  # noqa: E402
from imagetest.harnesses.k3s.auth import Keychain  # noqa: E402
from imagetest.harnesses.k3s.model import HarnessK3sModel  # noqa: E402
from imagetest.inventory import FileBackend, InventoryStore  # noqa: E402
from imagetest.utils import harness_display_name, log_and_print_error, truncate_name  # noqa: E402

logger = logging.getLogger(__name__)


@dataclass
class Evaluation:
    """Harnesses and features of one invocation with their latest phase results."""

    store: ProviderStore
    harnesses: list[tuple[HarnessK3sModel, PhaseResult]] = field(default_factory=list)
    features: list[tuple[FeatureModel, PhaseResult]] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    def collect(self) -> Diagnostics:
        diags = Diagnostics()
        diags.extend(self.diagnostics)
        for _, result in self.harnesses:
            diags.extend(result.diagnostics)
        for _, result in self.features:
            diags.extend(result.diagnostics)
        return diags


class Imagetest:
    """Main CLI interface for imagetest."""

    def __init__(
        self,
        docker_client_factory: Callable[[], Any] | None = None,
        keychain: Keychain | None = None,
        handle_factory: HandleFactory | None = None,
    ) -> None:
        """Initialize imagetest with optional dependency injection."""
        self._config_loader = ConfigLoader()
        self._docker_client_factory = docker_client_factory
        self._keychain = keychain
        self._handle_factory = handle_factory

    def plan(
        self,
        config: str | None = None,
        labels: str | None = None,
        parallelism: int = DEFAULT_PARALLELISM,
    ) -> None:
        """Compute harness identifiers and register harnesses and features.

        Parameters
        ----------
        config : str | None
            Path to the YAML configuration, defaults to IMAGETEST_CONFIG or
            imagetest.yaml
        labels : str | None
            Runtime labels as ``k=v,k2=v2``, overriding configured labels
        parallelism : int
            Number of resources evaluated concurrently
        """
        with self._executor(parallelism) as executor:
            evaluation = self._plan(config, labels, executor)

        self._print_harnesses(evaluation)
        self._exit_on_error(evaluation, "plan")

    def apply(
        self,
        config: str | None = None,
        labels: str | None = None,
        parallelism: int = DEFAULT_PARALLELISM,
    ) -> None:
        """Plan, then create every harness and run its features.

        Every harness and feature is planned before any harness is created,
        so skip decisions see the complete feature set.

        Parameters
        ----------
        config : str | None
            Path to the YAML configuration
        labels : str | None
            Runtime labels as ``k=v,k2=v2``
        parallelism : int
            Number of resources evaluated concurrently
        """
        with self._executor(parallelism) as executor:
            evaluation = self._plan(config, labels, executor)
            if not evaluation.collect().has_error():
                self._create(evaluation, executor)

        self._print_harnesses(evaluation)
        self._exit_on_error(evaluation, "apply")

    def inventory(self, config: str | None = None, labels: str | None = None) -> None:
        """Show the planned inventory and the skip decision for each harness.

        Parameters
        ----------
        config : str | None
            Path to the YAML configuration
        labels : str | None
            Runtime labels as ``k=v,k2=v2``
        """
        with self._executor(1) as executor:
            evaluation = self._plan(config, labels, executor)

        store = evaluation.store
        seeds = store.inventories.seeds()
        if not seeds:
            print("No harnesses defined")
            return

        for seed in seeds:
            inventory = store.inventory(seed)
            print(f"Inventory {seed} ({store.encode(seed)}):")
            print(f"{'HARNESS':<24} {'FEATURE':<24} {'SKIP':<6} LABELS")
            print("-" * 80)

            for harness in inventory.harnesses():
                features = inventory.get_features(harness)
                skip = "yes" if should_skip(store.labels, features) else "no"
                name = truncate_name(harness_display_name(harness))

                if not features:
                    print(f"{name:<24} {'-':<24} {skip:<6}")
                    continue

                for feature in features:
                    labels_str = ",".join(f"{k}={v}" for k, v in feature.labels.items())
                    print(f"{name:<24} {truncate_name(feature.name):<24} {skip:<6} {labels_str}")

        self._exit_on_error(evaluation, "inventory")

    def _executor(self, parallelism: int) -> ThreadPoolExecutor:
        if parallelism < 1:
            raise ValueError(f"parallelism must be at least 1, got {parallelism}")
        return ThreadPoolExecutor(max_workers=parallelism, thread_name_prefix="imagetest")

    def _create_store(self, provider: dict[str, Any]) -> ProviderStore:
        backend = None
        if provider["inventory_dir"]:
            backend = FileBackend(provider["inventory_dir"])

        return ProviderStore(
            labels=provider["labels"],
            k3s_defaults=provider["k3s"],
            inventories=InventoryStore(backend),
            docker_client_factory=self._docker_client_factory,
            keychain=self._keychain,
        )

    def _plan(
        self, config: str | None, labels: str | None, executor: ThreadPoolExecutor
    ) -> Evaluation:
        cfg = self._config_loader.load_config(config)
        self._config_loader.validate_config(cfg)
        provider = self._config_loader.get_provider_config(cfg, labels)

        store = self._create_store(provider)
        evaluation = Evaluation(store=store)

        harness_resource = K3sHarnessResource(store, handle_factory=self._handle_factory)
        feature_resource = FeatureResource(store)

        models = self._config_loader.build_harness_models(cfg)
        results = list(executor.map(harness_resource.plan, models))
        evaluation.harnesses = list(zip(models, results))

        planned = {model.name: result.state for model, result in evaluation.harnesses}

        features = []
        for name, data in (cfg.get("features") or {}).items():
            state = planned.get(data["harness"])
            if state is None:
                evaluation.diagnostics.add_error(
                    f"failed to plan feature [{name}]",
                    f"harness [{data['harness']}] was not planned",
                )
                continue
            features.append(self._config_loader.build_feature_model(name, data, state))

        feature_results = list(executor.map(feature_resource.plan, features))
        evaluation.features = list(zip(features, feature_results))
        return evaluation

    def _create(self, evaluation: Evaluation, executor: ThreadPoolExecutor) -> None:
        store = evaluation.store
        harness_resource = K3sHarnessResource(store, handle_factory=self._handle_factory)
        feature_resource = FeatureResource(store)

        models = [model for model, _ in evaluation.harnesses]
        results = list(executor.map(harness_resource.create, models))
        evaluation.harnesses = list(zip(models, results))

        created = {model.id: result.state for model, result in evaluation.harnesses}

        runnable = []
        for feature, planned in evaluation.features:
            state = created.get(feature.harness_id)
            if state is None:
                diags = Diagnostics()
                diags.add_error(
                    f"failed to create feature [{feature.name}]",
                    f"harness [{feature.harness_id}] was not created",
                )
                planned.diagnostics.extend(diags)
                continue
            runnable.append(replace(feature, harness=state))

        feature_results = list(executor.map(feature_resource.create, runnable))
        ran = {(f.name, f.harness_id): r for f, r in zip(runnable, feature_results)}

        evaluation.features = [
            (feature, ran.get((feature.name, feature.harness_id), planned))
            for feature, planned in evaluation.features
        ]

    def _print_harnesses(self, evaluation: Evaluation) -> None:
        if not evaluation.harnesses:
            print("No harnesses defined")
            return

        print(f"{'NAME':<24} {'ID':<40} {'STATUS':<10} FEATURES")
        print("-" * 90)

        for model, result in evaluation.harnesses:
            status = result.status.value if result.status else "failed"
            harness_id = model.id or "-"
            count = sum(1 for f, _ in evaluation.features if f.harness_id == model.id)
            print(f"{truncate_name(model.name):<24} {harness_id:<40} {status:<10} {count}")

    def _exit_on_error(self, evaluation: Evaluation, phase: str) -> None:
        diags = evaluation.collect()
        if diags.has_error():
            log_and_print_error("%s finished with %d error(s)", phase, len(diags.errors))
            sys.exit(EXIT_ERROR)

        skipped = sum(
            1 for _, r in evaluation.harnesses if r.status is HarnessStatus.SKIPPED
        )
        if skipped:
            logger.info("%d harness(es) skipped by runtime labels", skipped)


if __name__ == "__main__":
    main()
