"""Docker-backed k3s harness: a k3s server plus a networked sandbox container."""

from __future__ import annotations

import io
import logging
import tarfile
import time
from pathlib import PurePosixPath
from typing import Any

from docker import errors as docker_errors
from docker.types import Mount

from imagetest.constants import (
    K3S_API_PORT,
    K3S_KUBECONFIG_PATH,
    K3S_REGISTRIES_PATH,
    SANDBOX_KUBECONFIG_PATH,
    SETUP_POLL_INTERVAL_SECONDS,
)
from imagetest.core.timeouts import Deadline
from imagetest.exceptions import HarnessSetupError, ImagetestError
from imagetest.harnesses.k3s.auth import DockerKeychain, Keychain
from imagetest.harnesses.k3s.spec import BootstrapSpec
from imagetest.utils import sanitize_resource_name

logger = logging.getLogger(__name__)

HARNESS_LABEL = "dev.imagetest.harness"


class StepFailedError(ImagetestError):
    """Raised when a command run inside the sandbox exits non-zero."""

    def __init__(self, command: str, exit_code: int, output: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"command {command!r} exited with code {exit_code}: {output}")


def _archive(path: str, content: str) -> tuple[str, bytes]:
    """Pack a single file into a tar stream for ``put_archive``.

    The archive is rooted at ``/`` so missing parent directories are
    created on extraction. Returns the extraction directory and the bytes.
    """
    target = PurePosixPath(path)
    data = content.encode("utf-8")
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        info = tarfile.TarInfo(name=str(target.relative_to("/")))
        info.size = len(data)
        info.mode = 0o600
        info.mtime = int(time.time())
        tar.addfile(info, io.BytesIO(data))
    return "/", buf.getvalue()


class K3sHarness:
    """Live handle for one k3s harness.

    ``setup`` creates a dedicated bridge network, a privileged k3s server
    container and a sandbox container with the cluster kubeconfig. Every
    Docker object created is recorded in ``resources`` in creation order;
    nothing is removed on failure.

    Parameters
    ----------
    harness_id : str
        Harness identifier, used as the prefix of every Docker object name
    client : Any
        Docker client (``docker.DockerClient``)
    spec : BootstrapSpec
        Resolved bootstrap specification
    keychain : Keychain | None
        Credential lookup for keychain-auth registries
    """

    def __init__(
        self,
        harness_id: str,
        client: Any,
        spec: BootstrapSpec,
        keychain: Keychain | None = None,
    ) -> None:
        self.harness_id = harness_id
        self.client = client
        self.spec = spec
        self.keychain = keychain or DockerKeychain()
        self.name = sanitize_resource_name(harness_id)
        self.resources: list[tuple[str, str]] = []
        self.server: Any = None
        self.sandbox: Any = None

    @property
    def network_name(self) -> str:
        return self.name

    @property
    def server_name(self) -> str:
        return f"{self.name}-k3s"

    @property
    def sandbox_name(self) -> str:
        return f"{self.name}-sandbox"

    def setup(self, deadline: Deadline) -> None:
        """Bring the cluster and sandbox up.

        Parameters
        ----------
        deadline : Deadline
            Bound for the whole setup; checked between steps

        Raises
        ------
        HarnessTimeoutError
            If the deadline expires or is cancelled
        HarnessSetupError
            If a Docker call fails or the cluster never becomes ready
        """
        try:
            self._create_network(deadline)
            self._start_server(deadline)
            self._wait_ready(deadline)
            kubeconfig = self._kubeconfig(deadline)
            self._start_sandbox(deadline, kubeconfig)
        except docker_errors.DockerException as e:
            raise HarnessSetupError(f"harness [{self.harness_id}]: {e}") from e

        deadline.checkpoint("setup complete")
        logger.info("Harness [%s] ready", self.harness_id)

    def run(self, command: str, deadline: Deadline | None = None) -> str:
        """Run a shell command in the sandbox container.

        Parameters
        ----------
        command : str
            Command passed to ``sh -c``
        deadline : Deadline | None
            Optional bound checked before the command starts

        Returns
        -------
        str
            Combined command output

        Raises
        ------
        HarnessSetupError
            If the sandbox is not running
        StepFailedError
            If the command exits non-zero
        """
        if self.sandbox is None:
            raise HarnessSetupError(f"harness [{self.harness_id}] sandbox is not running")

        if deadline is not None:
            deadline.check(f"running {command!r}")

        logger.debug("Harness [%s] running: %s", self.harness_id, command)
        try:
            result = self.sandbox.exec_run(["/bin/sh", "-c", command])
        except docker_errors.DockerException as e:
            raise HarnessSetupError(f"harness [{self.harness_id}]: {e}") from e

        output = (result.output or b"").decode("utf-8", errors="replace")
        if result.exit_code != 0:
            raise StepFailedError(command, result.exit_code, output)
        return output

    def _labels(self) -> dict[str, str]:
        return {HARNESS_LABEL: self.harness_id}

    def _pull(self, ref: str) -> None:
        try:
            self.client.images.get(ref)
        except docker_errors.ImageNotFound:
            logger.info("Pulling %s", ref)
            self.client.images.pull(ref)

    def _create_network(self, deadline: Deadline) -> None:
        deadline.check("creating network")
        network = self.client.networks.create(
            self.network_name, driver="bridge", labels=self._labels()
        )
        self.resources.append(("network", network.id))
        logger.debug("Harness [%s] created network %s", self.harness_id, self.network_name)

    def _start_server(self, deadline: Deadline) -> None:
        image = str(self.spec.image)
        deadline.check("pulling k3s image")
        self._pull(image)

        deadline.check("creating k3s server")
        self.server = self.client.containers.create(
            image,
            command=self.spec.server_args(),
            name=self.server_name,
            hostname=self.server_name,
            privileged=True,
            detach=True,
            labels=self._labels(),
            network=self.network_name,
            tmpfs={"/run": "", "/var/run": ""},
        )
        self.resources.append(("container", self.server.id))

        registries = self.spec.render_registries(self.keychain)
        self.server.put_archive(*_archive(K3S_REGISTRIES_PATH, registries))

        for network in self.spec.networks:
            deadline.check(f"attaching network {network}")
            self.client.networks.get(network).connect(self.server)

        self.server.start()
        logger.info("Harness [%s] started k3s server %s", self.harness_id, image)

    def _wait_ready(self, deadline: Deadline) -> None:
        while True:
            deadline.check("waiting for k3s")
            result = self.server.exec_run(["kubectl", "get", "--raw", "/readyz"])
            if result.exit_code == 0:
                return
            deadline.wait(SETUP_POLL_INTERVAL_SECONDS)

    def _kubeconfig(self, deadline: Deadline) -> str:
        deadline.check("reading kubeconfig")
        result = self.server.exec_run(["cat", K3S_KUBECONFIG_PATH])
        if result.exit_code != 0:
            raise HarnessSetupError(f"harness [{self.harness_id}]: kubeconfig not readable")

        kubeconfig = result.output.decode("utf-8")
        return kubeconfig.replace(
            f"https://127.0.0.1:{K3S_API_PORT}", f"https://{self.server_name}:{K3S_API_PORT}"
        )

    def _start_sandbox(self, deadline: Deadline, kubeconfig: str) -> None:
        sandbox = self.spec.sandbox
        image = str(sandbox.image)
        deadline.check("pulling sandbox image")
        self._pull(image)

        deadline.check("creating sandbox")
        mounts = [Mount(target=m.target, source=m.source, type="bind") for m in sandbox.mounts]
        self.sandbox = self.client.containers.create(
            image,
            entrypoint=["tail", "-f", "/dev/null"],
            name=self.sandbox_name,
            privileged=sandbox.privileged,
            environment={**sandbox.env, "KUBECONFIG": SANDBOX_KUBECONFIG_PATH},
            mounts=mounts,
            detach=True,
            labels=self._labels(),
            network=self.network_name,
        )
        self.resources.append(("container", self.sandbox.id))
        self.sandbox.put_archive(*_archive(SANDBOX_KUBECONFIG_PATH, kubeconfig))

        for network in sandbox.networks:
            deadline.check(f"attaching sandbox network {network}")
            self.client.networks.get(network).connect(self.sandbox)

        self.sandbox.start()
        logger.debug("Harness [%s] started sandbox %s", self.harness_id, image)
