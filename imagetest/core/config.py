import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from imagetest.cli.parsing import parse_duration, parse_labels
from imagetest.constants import CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE, LABELS_ENV_VAR
from imagetest.core.feature import FeatureModel
from imagetest.harnesses.k3s.model import HarnessK3sModel, ProviderK3sDefaults

logger = logging.getLogger(__name__)

SUPPORTED_HARNESS_TYPES = ("k3s",)


class ConfigLoader:
    """Load and validate YAML harness and feature configuration."""

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS = {
            "provider": {
                "labels": {},
                "inventory_dir": None,
                "harnesses": {"k3s": {"registries": {}, "networks": {}}},
            },
            "inventory": {},
            "harnesses": {},
            "features": {},
        }

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks IMAGETEST_CONFIG env var,
            then falls back to imagetest.yaml

        Returns
        -------
        dict[str, Any]
            Parsed configuration merged over the built-in defaults, with all
            variable interpolations resolved

        Raises
        ------
        ValueError
            If the file is not valid YAML or variables cannot be resolved
        RuntimeError
            If the file cannot be read
        omegaconf.errors.InterpolationResolutionError
            If undefined variables are referenced or circular references exist
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)

        config_file = Path(config_path)

        if not config_file.exists():
            logger.debug("Config file %s not found, using defaults", config_file)
            return copy.deepcopy(self.BUILT_IN_DEFAULTS)

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise RuntimeError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return copy.deepcopy(self.BUILT_IN_DEFAULTS)

        if "vars" in cfg:
            vars_dict = OmegaConf.to_container(cfg.vars, resolve=False)
            for key, value in vars_dict.items():
                if key not in cfg:
                    cfg[key] = value

        try:
            loaded = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise
        except (ValueError, KeyError, AttributeError) as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        config = copy.deepcopy(self.BUILT_IN_DEFAULTS)
        for key, value in loaded.items():
            if value is not None:
                config[key] = value

        return config

    def get_provider_config(
        self, config: dict[str, Any], labels: str | dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Get the provider section with runtime label overrides applied.

        Labels come from, in order of precedence, the ``labels`` argument,
        the IMAGETEST_LABELS environment variable and ``provider.labels``.

        Parameters
        ----------
        config : dict[str, Any]
            Full configuration from YAML
        labels : str | dict[str, Any] | None
            Runtime labels from the command line

        Returns
        -------
        dict[str, Any]
            Provider configuration with ``labels`` as a ``dict[str, str]`` and
            ``k3s`` as ``ProviderK3sDefaults``

        Raises
        ------
        ValueError
            If the labels cannot be parsed
        """
        provider = config.get("provider") or {}
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS["provider"])
        for key, value in provider.items():
            merged[key] = value

        if labels is None:
            labels = os.environ.get(LABELS_ENV_VAR)
        if labels is None:
            labels = merged.get("labels") or {}

        harnesses = merged.get("harnesses") or {}

        return {
            "labels": parse_labels(labels),
            "inventory_dir": merged.get("inventory_dir"),
            "k3s": ProviderK3sDefaults.from_dict(harnesses.get("k3s")),
        }

    def get_seed(self, config: dict[str, Any]) -> str:
        return str((config.get("inventory") or {})["seed"])

    def build_harness_models(self, config: dict[str, Any]) -> list[HarnessK3sModel]:
        """Build harness models in declaration order.

        Parameters
        ----------
        config : dict[str, Any]
            Validated configuration

        Returns
        -------
        list[HarnessK3sModel]
            One model per declared harness
        """
        seed = self.get_seed(config)
        models = []
        for name, data in (config.get("harnesses") or {}).items():
            model = HarnessK3sModel.from_dict(name, seed, data or {})
            model.create_timeout = parse_duration(model.create_timeout)
            models.append(model)
        return models

    def build_feature_model(
        self, name: str, data: dict[str, Any], harness_state: dict[str, Any]
    ) -> FeatureModel:
        """Build a feature model bound to its harness's output state."""
        return FeatureModel(
            name=name,
            harness=harness_state,
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
            steps=[str(step) for step in data.get("steps") or []],
            timeout=parse_duration(data.get("timeout")),
        )

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate configuration has required fields and correct types.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration to validate

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        self._validate_inventory(config)
        self._validate_provider(config)

        harnesses = config.get("harnesses") or {}
        if not isinstance(harnesses, dict):
            raise ValueError("harnesses must be a dictionary")

        for name, harness in harnesses.items():
            self._validate_harness(str(name), harness or {})

        self._validate_features(config, harnesses)

    def _validate_inventory(self, config: dict[str, Any]) -> None:
        inventory = config.get("inventory")
        if not isinstance(inventory, dict):
            raise ValueError("inventory must be a dictionary")

        seed = inventory.get("seed")
        if seed is None or seed == "":
            raise ValueError("inventory.seed is required")

        if not isinstance(seed, str):
            raise ValueError("inventory.seed must be a string")

    def _validate_provider(self, config: dict[str, Any]) -> None:
        """Validate the provider section.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration to validate

        Raises
        ------
        ValueError
            If the provider section is invalid
        """
        provider = config.get("provider") or {}
        if not isinstance(provider, dict):
            raise ValueError("provider must be a dictionary")

        labels = provider.get("labels")
        if labels is not None and not isinstance(labels, dict):
            raise ValueError("provider.labels must be a dictionary")

        inventory_dir = provider.get("inventory_dir")
        if inventory_dir is not None and not isinstance(inventory_dir, str):
            raise ValueError("provider.inventory_dir must be a string")

        harnesses = provider.get("harnesses") or {}
        if not isinstance(harnesses, dict):
            raise ValueError("provider.harnesses must be a dictionary")

        k3s = harnesses.get("k3s") or {}
        if not isinstance(k3s, dict):
            raise ValueError("provider.harnesses.k3s must be a dictionary")

        self._validate_registries("provider.harnesses.k3s", k3s.get("registries"))
        self._validate_networks("provider.harnesses.k3s", k3s.get("networks"))

    def _validate_harness(self, name: str, harness: Any) -> None:
        """Validate a single harness declaration.

        Parameters
        ----------
        name : str
            Harness name
        harness : Any
            Harness declaration

        Raises
        ------
        ValueError
            If the harness declaration is invalid
        """
        prefix = f"harness '{name}'"

        if not isinstance(harness, dict):
            raise ValueError(f"{prefix} must be a dictionary")

        harness_type = harness.get("type", "k3s")
        if harness_type not in SUPPORTED_HARNESS_TYPES:
            raise ValueError(
                f"{prefix}: unknown type '{harness_type}'. "
                f"Supported types: {list(SUPPORTED_HARNESS_TYPES)}"
            )

        for toggle in ("disable_cni", "disable_traefik", "disable_metrics_server"):
            if toggle in harness and not isinstance(harness[toggle], bool):
                raise ValueError(f"{prefix}: {toggle} must be a boolean")

        if "image" in harness and not isinstance(harness["image"], str):
            raise ValueError(f"{prefix}: image must be a string")

        self._validate_registries(prefix, harness.get("registries"))
        self._validate_networks(prefix, harness.get("networks"))
        self._validate_sandbox(prefix, harness.get("sandbox"))

        timeouts = harness.get("timeouts") or {}
        if not isinstance(timeouts, dict):
            raise ValueError(f"{prefix}: timeouts must be a dictionary")

        if "create" in timeouts:
            try:
                parse_duration(timeouts["create"])
            except ValueError as e:
                raise ValueError(f"{prefix}: timeouts.create: {e}") from e

    def _validate_registries(self, prefix: str, registries: Any) -> None:
        if registries is None:
            return

        if not isinstance(registries, dict):
            raise ValueError(f"{prefix}: registries must be a dictionary")

        for host, registry in registries.items():
            if registry is None:
                continue

            if not isinstance(registry, dict):
                raise ValueError(f"{prefix}: registry '{host}' must be a dictionary")

            unknown = set(registry) - {"auth", "tls", "mirror"}
            if unknown:
                raise ValueError(
                    f"{prefix}: registry '{host}' has unknown keys: {sorted(unknown)}"
                )

            for block, allowed in (
                ("auth", {"username", "password", "auth"}),
                ("tls", {"cert_file", "key_file", "ca_file"}),
                ("mirror", {"endpoints"}),
            ):
                value = registry.get(block)
                if value is None:
                    continue

                if not isinstance(value, dict):
                    raise ValueError(f"{prefix}: registry '{host}' {block} must be a dictionary")

                unknown = set(value) - allowed
                if unknown:
                    raise ValueError(
                        f"{prefix}: registry '{host}' {block} has unknown keys: {sorted(unknown)}"
                    )

    def _validate_networks(self, prefix: str, networks: Any) -> None:
        if networks is None:
            return

        if isinstance(networks, dict):
            entries = list(networks.values())
        elif isinstance(networks, list):
            entries = networks
        else:
            raise ValueError(f"{prefix}: networks must be a dictionary or a list")

        for entry in entries:
            if isinstance(entry, dict):
                entry = entry.get("name")
            if not isinstance(entry, str) or not entry:
                raise ValueError(f"{prefix}: network entries must have a non-empty name")

    def _validate_sandbox(self, prefix: str, sandbox: Any) -> None:
        """Validate sandbox configuration.

        Parameters
        ----------
        prefix : str
            Message prefix naming the harness
        sandbox : Any
            Sandbox declaration

        Raises
        ------
        ValueError
            If the sandbox declaration is invalid
        """
        if sandbox is None:
            return

        if not isinstance(sandbox, dict):
            raise ValueError(f"{prefix}: sandbox must be a dictionary")

        if "image" in sandbox and not isinstance(sandbox["image"], str):
            raise ValueError(f"{prefix}: sandbox.image must be a string")

        if "privileged" in sandbox and not isinstance(sandbox["privileged"], bool):
            raise ValueError(f"{prefix}: sandbox.privileged must be a boolean")

        envs = sandbox.get("envs")
        if envs is not None and not isinstance(envs, dict):
            raise ValueError(f"{prefix}: sandbox.envs must be a dictionary")

        mounts = sandbox.get("mounts")
        if mounts is not None:
            if not isinstance(mounts, list):
                raise ValueError(f"{prefix}: sandbox.mounts must be a list")

            for mount in mounts:
                if not isinstance(mount, dict):
                    raise ValueError(f"{prefix}: sandbox.mounts entries must be dictionaries")

                if "source" not in mount or "destination" not in mount:
                    raise ValueError(
                        f"{prefix}: sandbox.mounts entry must have both "
                        "'source' and 'destination' keys"
                    )

                unknown = set(mount) - {"source", "destination"}
                if unknown:
                    raise ValueError(
                        f"{prefix}: sandbox.mounts entry has unknown keys: {sorted(unknown)}"
                    )

        self._validate_networks(f"{prefix}: sandbox", sandbox.get("networks"))

    def _validate_features(self, config: dict[str, Any], harnesses: dict[str, Any]) -> None:
        """Validate feature declarations against the declared harnesses.

        Raises
        ------
        ValueError
            If a feature is malformed or names an undeclared harness
        """
        features = config.get("features") or {}
        if not isinstance(features, dict):
            raise ValueError("features must be a dictionary")

        for name, feature in features.items():
            prefix = f"feature '{name}'"

            if not isinstance(feature, dict):
                raise ValueError(f"{prefix} must be a dictionary")

            harness = feature.get("harness")
            if not harness:
                raise ValueError(f"{prefix}: harness is required")

            if harness not in harnesses:
                available = list(harnesses.keys())
                raise ValueError(
                    f"{prefix}: harness '{harness}' not found. Available harnesses: {available}"
                )

            labels = feature.get("labels")
            if labels is not None and not isinstance(labels, dict):
                raise ValueError(f"{prefix}: labels must be a dictionary")

            steps = feature.get("steps")
            if steps is not None:
                if not isinstance(steps, list):
                    raise ValueError(f"{prefix}: steps must be a list")

                for step in steps:
                    if not isinstance(step, str):
                        raise ValueError(f"{prefix}: steps entries must be strings")

            if "timeout" in feature:
                try:
                    parse_duration(feature["timeout"])
                except ValueError as e:
                    raise ValueError(f"{prefix}: timeout: {e}") from e
