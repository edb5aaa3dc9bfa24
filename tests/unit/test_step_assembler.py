# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Unit tests for step assembly.
"""
import logging
import uuid

import pytest
from pydantic import ValidationError

from pipec.COMPILER.step_assembler import StepAssembler
from pipec.MODELS.compilation_context import CompilationContext, Secret, Registry, ResourceLimit
from pipec.MODELS.step import StepType, Conn, FAILURE_FAIL, FAILURE_IGNORE
from pipec.PARSERS.manifest_parser import ManifestParser
from pipec.MODELS.step_declaration import (
    StepDeclaration, VolumeMount, SecretRequest, WhenConstraints, Constraint,
    BackendOptions, KubernetesBackendOptions, Resources, Toleration,
)


class TestIdentityAndNaming:
    """Tests for identifiers, aliases and naming conventions."""

    def test_basic_example(self):
        """Test the reference example from a simple context."""
        context = CompilationContext(prefix="p", base="/ci", path="job1", environment={"A": "2"})
        decl = StepDeclaration(name="build", directory="sub", environment={"A": "1"})
        step = StepAssembler(context).assemble("build-1", decl, StepType.STEP)

        assert step.working_dir == "/ci/job1/sub"
        assert step.environment["A"] == "2"
        assert step.environment["CI_WORKSPACE"] == "/ci/job1"
        assert step.environment["CI_STEP_NAME"] == "build-1"
        assert step.networks[0].name == "p_default"
        assert step.networks[0].aliases == ["build"]

    def test_name_and_alias(self, assembler):
        """Test that the caller name and declaration name are kept apart."""
        step = assembler.assemble("p_step_3", StepDeclaration(name="test"), StepType.STEP)
        assert step.name == "p_step_3"
        assert step.alias == "test"
        assert step.type == StepType.STEP

    def test_uuid_is_canonical_v4(self, assembler):
        """Test the identifier format."""
        step = assembler.assemble("a", StepDeclaration(name="a"), StepType.STEP)
        parsed = uuid.UUID(step.uuid)
        assert parsed.version == 4
        assert str(parsed) == step.uuid

    def test_uuid_unique_per_call(self, assembler):
        """Test that the same declaration gets a fresh identifier every time."""
        decl = StepDeclaration(name="a")
        ids = {assembler.assemble("a", decl, StepType.STEP).uuid for _ in range(100)}
        assert len(ids) == 100

    def test_global_networks(self):
        """Test that global networks follow the default network without aliases."""
        context = CompilationContext(prefix="p", networks=["extra", "other"])
        step = StepAssembler(context).assemble("a", StepDeclaration(name="web"), StepType.STEP)
        assert step.networks == [
            Conn(name="p_default", aliases=["web"]),
            Conn(name="extra"),
            Conn(name="other"),
        ]


class TestDetachedAndWorkdir:
    """Tests for detachment and working directory resolution."""

    def test_service_is_detached(self, assembler):
        step = assembler.assemble("db", StepDeclaration(name="db", image="postgres"), StepType.SERVICE)
        assert step.detached is True
        assert step.type == StepType.SERVICE

    def test_detached_declaration(self, assembler):
        step = assembler.assemble("a", StepDeclaration(name="a", detached=True), StepType.STEP)
        assert step.detached is True

    def test_detached_without_commands_has_no_workdir(self, assembler):
        """Test that a detached step without commands keeps the image workdir."""
        step = assembler.assemble("db", StepDeclaration(name="db", directory="x"), StepType.SERVICE)
        assert step.working_dir == ""

    def test_detached_with_commands_has_workdir(self, assembler):
        decl = StepDeclaration(name="db", commands=["./start.sh"])
        step = assembler.assemble("db", decl, StepType.SERVICE)
        assert step.working_dir == "/ci/job1"

    def test_absolute_directory_verbatim(self, assembler):
        step = assembler.assemble("a", StepDeclaration(name="a", directory="/opt/app"), StepType.STEP)
        assert step.working_dir == "/opt/app"

    def test_empty_path_segments(self):
        context = CompilationContext(prefix="p", base="/ci", path="")
        step = StepAssembler(context).assemble("a", StepDeclaration(name="a"), StepType.STEP)
        assert step.working_dir == "/ci"
        assert step.environment["CI_WORKSPACE"] == "/ci"


class TestEnvironment:
    """Tests for environment precedence."""

    def test_ci_variables_override_declaration(self, assembler):
        decl = StepDeclaration(name="a", environment={"CI_WORKSPACE": "x", "CI_STEP_NAME": "y"})
        step = assembler.assemble("real", decl, StepType.STEP)
        assert step.environment["CI_WORKSPACE"] == "/ci/job1"
        assert step.environment["CI_STEP_NAME"] == "real"

    def test_ci_variables_override_global(self):
        context = CompilationContext(prefix="p", base="/ci", environment={"CI_STEP_NAME": "g"})
        step = StepAssembler(context).assemble("real", StepDeclaration(name="a"), StepType.STEP)
        assert step.environment["CI_STEP_NAME"] == "real"

    def test_keys_are_case_sensitive(self, assembler):
        decl = StepDeclaration(name="a", environment={"foo": "1", "FOO": "2"})
        step = assembler.assemble("a", decl, StepType.STEP)
        assert step.environment["foo"] == "1"
        assert step.environment["FOO"] == "2"

    def test_settings_override_global(self):
        context = CompilationContext(prefix="p", environment={"PLUGIN_REPO": "global"})
        decl = StepDeclaration(name="a", image="plugins/docker", settings={"repo": "org/app"})
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.environment["PLUGIN_REPO"] == "org/app"

    def test_settings_ignored_when_detached(self, assembler):
        decl = StepDeclaration(name="a", settings={"repo": "org/app"})
        step = assembler.assemble("a", decl, StepType.SERVICE)
        assert "PLUGIN_REPO" not in step.environment

    def test_settings_from_secret(self):
        context = CompilationContext(prefix="p", secrets={
            "docker_password": Secret(name="docker_password", value="pw"),
        })
        decl = StepDeclaration(name="a", image="plugins/docker",
                               settings={"password": {"from_secret": "DOCKER_PASSWORD"}})
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.environment["PLUGIN_PASSWORD"] == "pw"

    def test_settings_failure_is_logged_and_partial(self, assembler, caplog):
        """Test that a failing setting keeps earlier entries and does not abort assembly."""
        decl = StepDeclaration(name="a", image="plugins/docker", settings={
            "first": "1",
            "password": {"from_secret": "missing"},
            "last": "2",
        })
        with caplog.at_level(logging.ERROR):
            step = assembler.assemble("a", decl, StepType.STEP)

        assert step.environment["PLUGIN_FIRST"] == "1"
        assert "PLUGIN_LAST" not in step.environment
        assert "PLUGIN_PASSWORD" not in step.environment
        assert any("missing" in r.getMessage() for r in caplog.records)

    def test_settings_do_not_see_out_of_scope_secrets(self, caplog):
        context = CompilationContext(prefix="p", secrets={
            "token": Secret(name="token", value="t", allowed_plugins=["plugins/s3"]),
        })
        decl = StepDeclaration(name="a", image="plugins/docker",
                               settings={"token": {"from_secret": "token"}})
        with caplog.at_level(logging.ERROR):
            step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert "PLUGIN_TOKEN" not in step.environment
        assert caplog.records

    def test_requested_secret(self):
        """Test that a requested secret is exposed under its upper-cased target."""
        context = CompilationContext(prefix="p", secrets={"token": Secret(name="token", value="s3cret")})
        decl = StepDeclaration(
            name="a",
            commands=["deploy"],
            environment={"API_KEY": "declared"},
            secrets=[SecretRequest(source="Token", target="api_key")],
        )
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.environment["API_KEY"] == "s3cret"

    def test_requested_secret_beats_everything(self):
        context = CompilationContext(
            prefix="p",
            environment={"PLUGIN_KEY": "global"},
            secrets={"key": Secret(name="key", value="secret")},
        )
        decl = StepDeclaration(
            name="a",
            image="plugins/x",
            environment={"PLUGIN_KEY": "declared"},
            settings={"key": "setting"},
            secrets=[SecretRequest(source="key", target="plugin_key")],
        )
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.environment["PLUGIN_KEY"] == "secret"

    def test_unknown_requested_secret_is_skipped(self, assembler):
        decl = StepDeclaration(name="a", commands=["x"], secrets=[SecretRequest(source="nope", target="nope")])
        step = assembler.assemble("a", decl, StepType.STEP)
        assert "NOPE" not in step.environment

    def test_requested_secret_restricted_to_plugins(self):
        context = CompilationContext(prefix="p", secrets={
            "token": Secret(name="token", value="t", allowed_plugins=["plugins/docker"]),
        })
        decl = StepDeclaration(name="a", commands=["env"], secrets=[SecretRequest(source="token", target="token")])
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert "TOKEN" not in step.environment


class TestPrivileged:
    """Tests for privilege escalation."""

    def test_declared_privileged(self, assembler):
        decl = StepDeclaration(name="a", image="alpine", commands=["id"], privileged=True)
        assert assembler.assemble("a", decl, StepType.STEP).privileged is True

    def test_escalated_plugin(self):
        context = CompilationContext(prefix="p", escalated=["plugins/docker"])
        decl = StepDeclaration(name="a", image="plugins/docker:20")
        assert StepAssembler(context).assemble("a", decl, StepType.STEP).privileged is True

    def test_escalated_image_with_commands(self):
        context = CompilationContext(prefix="p", escalated=["plugins/docker"])
        decl = StepDeclaration(name="a", image="plugins/docker", commands=["sh"])
        assert StepAssembler(context).assemble("a", decl, StepType.STEP).privileged is False

    def test_not_escalated(self):
        context = CompilationContext(prefix="p", escalated=["plugins/docker"])
        decl = StepDeclaration(name="a", image="plugins/s3")
        assert StepAssembler(context).assemble("a", decl, StepType.STEP).privileged is False


class TestRegistryAndLimits:
    """Tests for registry credentials and resource ceilings."""

    def test_registry_selection(self):
        context = CompilationContext(prefix="p", registries=[
            Registry(hostname="docker.io", username="hub", password="hubpw"),
            Registry(hostname="ghcr.io", username="gh", password="ghpw", email="me@example.com"),
        ])
        step = StepAssembler(context).assemble("a", StepDeclaration(name="a", image="ghcr.io/x/y"), StepType.STEP)
        assert step.auth_config.username == "gh"
        assert step.auth_config.password == "ghpw"
        assert step.auth_config.email == "me@example.com"

    def test_no_registry_match(self):
        context = CompilationContext(prefix="p", registries=[Registry(hostname="ghcr.io", username="gh")])
        step = StepAssembler(context).assemble("a", StepDeclaration(name="a", image="quay.io/x/y"), StepType.STEP)
        assert step.auth_config.username == ""
        assert step.auth_config.password == ""

    def test_ceilings_per_dimension(self):
        context = CompilationContext(prefix="p", reslimit=ResourceLimit(mem_limit=1024, cpu_set="0-1"))
        decl = StepDeclaration(name="a", mem_limit=10, mem_swap_limit=20, shm_size=30,
                               cpu_quota=40, cpu_shares=50, cpu_set="3")
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.mem_limit == 1024
        assert step.cpu_set == "0-1"
        assert step.mem_swap_limit == 20
        assert step.shm_size == 30
        assert step.cpu_quota == 40
        assert step.cpu_shares == 50


class TestVolumes:
    """Tests for volume ordering."""

    def test_volume_order(self):
        context = CompilationContext(prefix="p", base="/ci", volumes=["/var/run/docker.sock:/var/run/docker.sock"])
        decl = StepDeclaration(name="a", volumes=[
            VolumeMount(source="cache", target="/cache", access_mode="ro"),
            VolumeMount(source="/tmp", target="/tmp"),
        ])
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.volumes == [
            "p_default:/ci",
            "/var/run/docker.sock:/var/run/docker.sock",
            "cache:/cache:ro",
            "/tmp:/tmp",
        ]

    def test_local_mode_skips_workspace(self):
        context = CompilationContext(prefix="p", local=True, volumes=["a:/a"])
        step = StepAssembler(context).assemble("a", StepDeclaration(name="a"), StepType.STEP)
        assert step.volumes == ["a:/a"]

    def test_no_deduplication(self):
        context = CompilationContext(prefix="p", local=True, volumes=["a:/a"])
        decl = StepDeclaration(name="a", volumes=[VolumeMount(source="a", target="/a")])
        step = StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert step.volumes == ["a:/a", "a:/a"]


class TestGatesAndPassthrough:
    """Tests for execution gates, failure policy and copied fields."""

    def test_default_gates(self, assembler):
        step = assembler.assemble("a", StepDeclaration(name="a"), StepType.STEP)
        assert step.on_success is True
        assert step.on_failure is False

    def test_failure_only_gate(self, assembler):
        when = WhenConstraints(constraints=[Constraint(status=["failure"])])
        step = assembler.assemble("a", StepDeclaration(name="a", when=when), StepType.STEP)
        assert step.on_success is False
        assert step.on_failure is True

    def test_failure_policy(self, assembler):
        assert assembler.assemble("a", StepDeclaration(name="a"), StepType.STEP).failure == FAILURE_FAIL
        decl = StepDeclaration(name="a", failure=FAILURE_IGNORE)
        assert assembler.assemble("a", decl, StepType.STEP).failure == FAILURE_IGNORE

    def test_passthrough_fields(self, assembler):
        decl = StepDeclaration(
            name="a",
            image="golang:1.22",
            pull=True,
            commands=["go build", "go test"],
            extra_hosts=["db:10.0.0.2"],
            tmpfs=["/run"],
            devices=["/dev/fuse"],
            dns=["1.1.1.1"],
            dns_search=["example.com"],
            sysctls={"net.core.somaxconn": "1024"},
            network_mode="host",
            ipc_mode="private",
        )
        step = assembler.assemble("a", decl, StepType.STEP)
        assert step.image == "golang:1.22"
        assert step.pull is True
        assert step.commands == ["go build", "go test"]
        assert step.extra_hosts == ["db:10.0.0.2"]
        assert step.tmpfs == ["/run"]
        assert step.devices == ["/dev/fuse"]
        assert step.dns == ["1.1.1.1"]
        assert step.dns_search == ["example.com"]
        assert step.sysctls == {"net.core.somaxconn": "1024"}
        assert step.network_mode == "host"
        assert step.ipc_mode == "private"

    def test_backend_options_copied(self, assembler):
        options = BackendOptions(kubernetes=KubernetesBackendOptions(
            resources=Resources(requests={"memory": "128Mi"}, limits={"cpu": "1"}),
            service_account_name="builder",
            node_selector={"arch": "arm64"},
            tolerations=[
                Toleration(key="gpu", operator="Exists", effect="NoSchedule"),
                Toleration(key="spot", operator="Equal", value="true", effect="NoExecute", toleration_seconds=60),
            ],
        ))
        step = assembler.assemble("a", StepDeclaration(name="a", backend_options=options), StepType.STEP)
        k8s = step.backend_options.kubernetes
        assert k8s.resources.requests == {"memory": "128Mi"}
        assert k8s.resources.limits == {"cpu": "1"}
        assert k8s.service_account_name == "builder"
        assert k8s.node_selector == {"arch": "arm64"}
        assert [t.key for t in k8s.tolerations] == ["gpu", "spot"]
        assert k8s.tolerations[0].toleration_seconds is None
        assert k8s.tolerations[1].toleration_seconds == 60


class TestImmutability:
    """Tests that inputs are left alone and outputs cannot change."""

    def test_context_not_mutated(self):
        context = CompilationContext(
            prefix="p",
            environment={"A": "1"},
            volumes=["v:/v"],
            secrets={"s": Secret(name="s", value="x")},
        )
        before = context.model_dump()
        decl = StepDeclaration(name="a", image="plugins/x", settings={"s": {"from_secret": "s"}},
                               secrets=[SecretRequest(source="s", target="s")])
        StepAssembler(context).assemble("a", decl, StepType.STEP)
        assert context.model_dump() == before

    def test_step_is_frozen(self, assembler):
        step = assembler.assemble("a", StepDeclaration(name="a"), StepType.STEP)
        with pytest.raises(ValidationError):
            step.image = "other"

    def test_steps_do_not_share_containers(self):
        """Test that changing one step in place leaves other steps and the context alone."""
        context = CompilationContext(prefix="p", local=True, environment={"A": "1"}, volumes=["v:/v"])
        assembler = StepAssembler(context)
        decl = StepDeclaration(name="a", commands=["x"])
        first = assembler.assemble("a", decl, StepType.STEP)
        second = assembler.assemble("a", decl, StepType.STEP)

        first.environment["A"] = "changed"
        first.volumes.append("extra:/extra")
        first.commands.append("y")

        assert second.environment["A"] == "1"
        assert second.volumes == ["v:/v"]
        assert second.commands == ["x"]
        assert context.environment == {"A": "1"}
        assert context.volumes == ["v:/v"]
        assert decl.commands == ["x"]


class TestSettingsFromManifest:
    """Tests for settings values coming straight from YAML."""

    def test_unencodable_setting_is_logged(self, assembler, caplog):
        """Test that a YAML date in settings degrades the environment instead of failing."""
        manifest = ManifestParser().parse_from_string(
            "steps:\n"
            "  publish:\n"
            "    image: plugins/docker\n"
            "    settings:\n"
            "      first: a\n"
            "      since: 2024-01-01\n"
            "      last: z\n"
        )
        with caplog.at_level(logging.ERROR):
            step = assembler.assemble("publish", manifest.steps[0], StepType.STEP)

        assert step.environment["PLUGIN_FIRST"] == "a"
        assert "PLUGIN_SINCE" not in step.environment
        assert "PLUGIN_LAST" not in step.environment
        assert step.environment["CI_STEP_NAME"] == "publish"
        assert any("since" in r.getMessage() for r in caplog.records)
