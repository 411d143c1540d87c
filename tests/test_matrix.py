"""Tests for matrix expansion, env overlays and trigger filtering."""

import pytest

from matrixci import axis, job, on, sh, wf
from matrixci.matrix import expand_job, expand_workflow, overlay, trigger_matches
from matrixci.model import TriggerContext


PUSH_MAIN = TriggerContext(event="push", branch="main")


def _matrix_job():
    return job(
        "test",
        sh("Build", "cargo build"),
        axes=[
            axis("os", ["linux", "mac", "win"]),
            axis("toolchain", ["stable", "nightly"]),
        ],
    )


class TestExpandJob:
    def test_cartesian_product_count(self):
        instances = expand_job(_matrix_job())
        assert len(instances) == 3 * 2

    def test_row_major_order_and_names(self):
        names = [i.name for i in expand_job(_matrix_job())]
        assert names == [
            "test-linux-stable",
            "test-linux-nightly",
            "test-mac-stable",
            "test-mac-nightly",
            "test-win-stable",
            "test-win-nightly",
        ]

    def test_variant_is_recorded_in_axis_order(self):
        first = expand_job(_matrix_job())[0]
        assert first.variant == (("os", "linux"), ("toolchain", "stable"))
        assert first.job == "test"

    def test_job_without_axes_expands_to_itself(self):
        j = job("lint", sh("Lint", "ruff check ."), os="ubuntu-latest", env={"X": "1"})
        instances = expand_job(j)
        assert len(instances) == 1
        only = instances[0]
        assert only.name == "lint"
        assert only.steps == j.steps
        assert only.variant == ()
        assert only.env == {"X": "1"}
        assert only.labels == {"os": "ubuntu-latest"}

    def test_axis_values_override_fixed_labels(self):
        j = job(
            "test",
            sh("Test", "cargo test"),
            os="ubuntu-latest",
            toolchain="stable",
            axes=[axis("os", ["macos-latest"])],
        )
        assert expand_job(j)[0].labels == {"os": "macos-latest", "toolchain": "stable"}

    def test_display_name_carries_variant_values(self):
        plain = job("check", sh("Fmt", "cargo fmt"), display_name="Linux-Stable")
        matrix = job("test", sh("Test", "cargo test"), display_name="Tests", axes=[axis("os", ["linux", "mac"])])

        assert expand_job(plain)[0].display_name == "Linux-Stable"
        assert [i.display_name for i in expand_job(matrix)] == ["Tests (linux)", "Tests (mac)"]
        assert expand_job(job("x", sh("s", "y")))[0].display_name is None

    def test_overlay_precedence_global_job_variant_step(self):
        j = job(
            "t",
            sh("s", "run", env={"C": "1"}),
            env={"A": "2", "B": "1"},
            axes=[axis("v", ["x"], env={"x": {"B": "2"}})],
        )
        instance = expand_job(j, {"A": "1"})[0]
        assert instance.env == {"A": "2", "B": "2"}
        assert overlay(instance.env, instance.steps[0].env) == {"A": "2", "B": "2", "C": "1"}

    def test_only_matching_axis_value_contributes_env(self):
        j = job(
            "t",
            sh("s", "run"),
            axes=[axis("toolchain", ["stable", "nightly"], env={"nightly": {"RUSTUP_TOOLCHAIN": "nightly"}})],
        )
        stable, nightly = expand_job(j)
        assert "RUSTUP_TOOLCHAIN" not in stable.env
        assert nightly.env["RUSTUP_TOOLCHAIN"] == "nightly"


class TestOverlay:
    def test_later_layers_win(self):
        assert overlay({"A": "1"}, {"A": "2", "B": "1"}, {"B": "2"}, {"C": "1"}) == {
            "A": "2",
            "B": "2",
            "C": "1",
        }

    def test_none_layers_are_ignored(self):
        assert overlay(None, {"A": "1"}, None) == {"A": "1"}

    def test_does_not_mutate_inputs(self):
        base = {"A": "1"}
        overlay(base, {"A": "2"})
        assert base == {"A": "1"}


class TestTriggerMatches:
    def _spec(self):
        return wf(
            job("build", sh("Build", "make")),
            triggers=on(pull_request=True, push=["main", "release/*"]),
        )

    def test_push_on_allowed_branch(self):
        assert trigger_matches(self._spec(), PUSH_MAIN)

    def test_push_on_other_branch(self):
        assert not trigger_matches(self._spec(), TriggerContext("push", "feature"))

    def test_branch_patterns(self):
        assert trigger_matches(self._spec(), TriggerContext("push", "release/1.2"))

    def test_pull_request_on_any_branch(self):
        assert trigger_matches(self._spec(), TriggerContext("pull_request", "feature"))

    def test_event_without_trigger_never_matches(self):
        spec = wf(job("build", sh("Build", "make")), triggers=on(push=True))
        assert not trigger_matches(spec, TriggerContext("pull_request", "main"))

    def test_default_triggers_accept_everything(self):
        spec = wf(job("build", sh("Build", "make")))
        assert trigger_matches(spec, TriggerContext("push", "anything"))
        assert trigger_matches(spec, TriggerContext("pull_request", "anything"))


class TestExpandWorkflow:
    def _spec(self):
        return wf(
            job("lint", sh("Lint", "ruff check .")),
            _matrix_job(),
            name="CI",
            triggers=on(push=["main"]),
            env={"RUST_BACKTRACE": "1"},
        )

    def test_jobs_keep_declaration_order(self):
        names = [i.name for i in expand_workflow(self._spec(), PUSH_MAIN)]
        assert names[0] == "lint"
        assert len(names) == 1 + 6

    def test_expansion_is_idempotent(self):
        spec = self._spec()
        assert expand_workflow(spec, PUSH_MAIN) == expand_workflow(spec, PUSH_MAIN)

    def test_global_env_reaches_every_instance(self):
        instances = expand_workflow(self._spec(), PUSH_MAIN)
        assert all(i.env["RUST_BACKTRACE"] == "1" for i in instances)

    def test_trigger_mismatch_expands_nothing(self):
        assert expand_workflow(self._spec(), TriggerContext("push", "feature")) == []

    def test_duplicate_instance_names_rejected(self):
        spec = wf(
            job("a-x", sh("s", "true")),
            job("a", sh("s", "true"), axes=[axis("v", ["x"])]),
        )
        with pytest.raises(ValueError, match="Duplicate job instance names"):
            expand_workflow(spec, PUSH_MAIN)
