"""End-to-end tests for the incremental generation pipeline (scripted generator, no LLM)."""

from __future__ import annotations

import pytest

from plugin_project_generator.errors import GenerationCapabilityError, PlanningError
from plugin_project_generator.models import (
    FailureReason,
    GenerationRequest,
    ProjectConfig,
    ProjectSpec,
    TaskStatus,
)
from plugin_project_generator.pipeline import Pipeline
from plugin_project_generator.planner import CONFIG_PATH, MANIFEST_PATH, build_plan
from plugin_project_generator.session import TASK_STATUS_CHECK

from conftest import RecordingCallbacks, command_source, good_content

PKG = "com.healplugin"
MAIN = "src/main/java/com/healplugin/HealPlugin.java"
HEAL = "src/main/java/com/healplugin/commands/HealCommand.java"
FLY = "src/main/java/com/healplugin/commands/FlyCommand.java"

UNDEFINED_HELPER = command_source(PKG, "HealCommand", "HealPlugin", extra="        new CooldownTracker().reset();\n")
REJECTED = "PREVIOUS ATTEMPT WAS REJECTED"


def _status(session, path: str) -> TaskStatus:
    return session.plan.get(path).status


class TestHappyPath:
    def test_all_files_complete(self, heal_spec, engine_config, callbacks, good_generator_for):
        session = Pipeline(engine_config, good_generator_for(heal_spec), callbacks).run(heal_spec)
        response = session.response
        assert response.success
        assert response.project_name == "Heal Plugin"
        assert response.file_count == 3
        assert [d.filename for d in response.file_details] == [MANIFEST_PATH, MAIN, HEAL]
        assert all(d.status == "completed" for d in response.file_details)
        assert response.validation[TASK_STATUS_CHECK].passed
        assert response.validation["project_dependency_satisfaction"].passed

    def test_metrics(self, heal_spec, engine_config, callbacks, good_generator_for):
        session = Pipeline(engine_config, good_generator_for(heal_spec), callbacks).run(heal_spec)
        metrics = session.response.metrics
        assert metrics.files_processed == 3
        assert metrics.validation_passes == 3
        assert metrics.retries_used == 0
        assert 0 < metrics.quality_score <= 100
        assert metrics.processing_time >= 0

    def test_callbacks_in_order(self, heal_spec, engine_config, callbacks, good_generator_for):
        Pipeline(engine_config, good_generator_for(heal_spec), callbacks).run(heal_spec)
        assert callbacks.events == [
            ("plan", "Heal Plugin"),
            ("start", MANIFEST_PATH), ("end", MANIFEST_PATH),
            ("start", MAIN), ("end", MAIN),
            ("start", HEAL), ("end", HEAL),
        ]
        assert len(callbacks.responses) == 1

    def test_accepts_generation_request(self, heal_spec, engine_config, callbacks, good_generator_for):
        request = GenerationRequest.model_validate({
            "name": "Heal Plugin",
            "prompt": "A survival helper plugin",
            "userId": "player-1",
            "features": ["/heal restores the player's health"],
        })
        session = Pipeline(engine_config, good_generator_for(heal_spec), callbacks).run(request)
        assert session.spec.user_id == "player-1"
        assert session.response.success

    def test_zero_features(self, engine_config, callbacks, good_generator_for):
        spec = ProjectSpec(name="Bare", prompt="Nothing but the skeleton")
        session = Pipeline(engine_config, good_generator_for(spec), callbacks).run(spec)
        assert len(session.tasks) == 2
        assert session.response.success
        assert session.response.file_count == 2

    def test_command_named_like_plugin(self, engine_config, callbacks, good_generator_for):
        spec = ProjectSpec(name="Heal Command", prompt="Heals", features=("/heal restores health",))
        session = Pipeline(engine_config, good_generator_for(spec), callbacks).run(spec)
        assert all(t.status == TaskStatus.COMPLETED for t in session.tasks)
        assert all(t.attempts == 1 for t in session.tasks)
        assert session.response.validation["duplicate_definitions"].passed

    def test_missing_prompt_aborts(self, engine_config, callbacks, good_generator_for, heal_spec):
        pipeline = Pipeline(engine_config, good_generator_for(heal_spec), callbacks)
        with pytest.raises(PlanningError):
            pipeline.run(ProjectSpec(name="Heal Plugin", prompt=""))
        assert callbacks.events == []


class TestContext:
    def test_context_grows_with_completed_files(self, two_command_spec, engine_config, callbacks, good_generator_for):
        generator = good_generator_for(two_command_spec)
        Pipeline(engine_config, generator, callbacks).run(two_command_spec)
        assert [c[2] for c in generator.calls] == [
            (),
            (MANIFEST_PATH,),
            (MANIFEST_PATH, MAIN),
            (MANIFEST_PATH, MAIN, HEAL),
        ]

    def test_prompt_carries_full_prior_content(self, heal_spec, engine_config, callbacks, good_generator_for):
        generator = good_generator_for(heal_spec)
        session = Pipeline(engine_config, generator, callbacks).run(heal_spec)
        heal_prompt = generator.calls_for(HEAL)[0][1]
        main_content = session.plan.get(MAIN).result.content
        assert f"=== {MAIN} ===" in heal_prompt
        assert main_content.rstrip() in heal_prompt

    def test_non_incremental_mode_sends_no_context(self, engine_config, callbacks, good_generator_for):
        spec = ProjectSpec(
            name="Heal Plugin",
            prompt="A survival helper plugin",
            features=("/heal restores the player's health",),
            incremental_mode=False,
        )
        generator = good_generator_for(spec)
        session = Pipeline(engine_config, generator, callbacks).run(spec)
        assert all(c[2] == () for c in generator.calls)
        assert all("No files have been generated yet." in c[1] for c in generator.calls)
        # validation still sees the real project
        assert session.response.success


class TestRetry:
    def test_undefined_symbol_triggers_retry(self, heal_spec, engine_config, callbacks, good_generator_for):
        generator = good_generator_for(heal_spec, scripts={HEAL: [UNDEFINED_HELPER]})
        session = Pipeline(engine_config, generator, callbacks).run(heal_spec)

        assert ("retry", HEAL) in callbacks.events
        heal = session.plan.get(HEAL)
        assert heal.status == TaskStatus.COMPLETED
        assert heal.attempts == 2
        assert heal.feedback == []
        second_prompt = generator.calls_for(HEAL)[1][1]
        assert REJECTED in second_prompt
        assert "class:CooldownTracker" in second_prompt
        assert session.response.metrics.retries_used == 1

    def test_retry_lowers_file_score(self, heal_spec, engine_config, callbacks, good_generator_for):
        clean = Pipeline(engine_config, good_generator_for(heal_spec), RecordingCallbacks()).run(heal_spec)
        retried = Pipeline(
            engine_config, good_generator_for(heal_spec, scripts={HEAL: [UNDEFINED_HELPER]}), callbacks,
        ).run(heal_spec)
        assert retried.plan.get(HEAL).result.quality_score < clean.plan.get(HEAL).result.quality_score

    def test_feedback_only_with_agents(self, engine_config, callbacks, good_generator_for):
        spec = ProjectSpec(
            name="Heal Plugin",
            prompt="A survival helper plugin",
            features=("/heal restores the player's health",),
            use_agents=False,
        )
        generator = good_generator_for(spec, scripts={HEAL: [UNDEFINED_HELPER]})
        session = Pipeline(engine_config, generator, callbacks).run(spec)
        assert session.plan.get(HEAL).attempts == 2
        assert all(REJECTED not in c[1] for c in generator.calls)

    @pytest.mark.parametrize("error", [
        GenerationCapabilityError("provider timed out"),
        RuntimeError("connection reset"),
        "",
        "Sorry, I cannot help with that.\n```\n\n```",
    ])
    def test_capability_failure_is_retried(self, heal_spec, engine_config, callbacks, good_generator_for, error):
        generator = good_generator_for(heal_spec, scripts={MAIN: [error]})
        session = Pipeline(engine_config, generator, callbacks).run(heal_spec)
        main = session.plan.get(MAIN)
        assert main.status == TaskStatus.COMPLETED
        assert main.attempts == 2
        assert ("retry", MAIN) in callbacks.events
        assert len(generator.calls_for(MAIN)) == 2
        assert session.response.metrics.retries_used == 1

    def test_budget_exhaustion_blocks_dependents(self, heal_spec, callbacks, good_generator_for):
        config = ProjectConfig(max_attempts=2)
        generator = good_generator_for(heal_spec, scripts={MAIN: ["not java at all", "still not java"]})
        session = Pipeline(config, generator, callbacks).run(heal_spec)

        main = session.plan.get(MAIN)
        assert main.status == TaskStatus.FAILED
        assert main.attempts == 2
        assert main.failure.reason == FailureReason.RETRY_BUDGET_EXHAUSTED

        heal = session.plan.get(HEAL)
        assert heal.status == TaskStatus.FAILED
        assert heal.attempts == 0
        assert heal.failure.reason == FailureReason.DEPENDENCY_BLOCKED
        assert heal.failure.blocking_task == MAIN
        assert generator.calls_for(HEAL) == []

        response = session.response
        assert not response.success
        assert response.file_count == 1
        assert response.metrics.files_processed == 3
        assert not response.validation[TASK_STATUS_CHECK].passed
        detail = {d.filename: d for d in response.file_details}[HEAL]
        assert detail.failure_reason == "dependency_blocked"
        assert detail.created_at == "unavailable"

    def test_low_quality_file_is_retried(self, heal_spec, callbacks, good_generator_for):
        config = ProjectConfig(max_attempts=1, min_quality_score=100)
        session = Pipeline(config, good_generator_for(heal_spec), callbacks).run(heal_spec)
        main = session.plan.get(MAIN)
        assert main.status == TaskStatus.FAILED
        assert main.feedback[0].startswith("[quality] Score")


class TestProjectRecheck:
    def test_missing_config_key_reopens_consumer(self, engine_config, callbacks, good_generator_for):
        spec = ProjectSpec(
            name="Heal Plugin",
            prompt="A survival helper plugin",
            features=("/heal restores health with a configurable cooldown",),
        )
        reads_cooldown = command_source(
            PKG, "HealCommand", "HealPlugin",
            extra='        int c = plugin.getConfig().getInt("heal.cooldown");\n',
        )
        generator = good_generator_for(spec, scripts={HEAL: [reads_cooldown]})
        session = Pipeline(engine_config, generator, callbacks).run(spec)

        assert [p for p, *_ in generator.calls] == [MANIFEST_PATH, MAIN, HEAL, CONFIG_PATH, HEAL]
        warnings = [msg for kind, msg in callbacks.events if kind == "warning"]
        assert len(warnings) == 1
        assert HEAL in warnings[0]
        assert "config:heal.cooldown" in warnings[0]

        heal = session.plan.get(HEAL)
        assert heal.status == TaskStatus.COMPLETED
        assert heal.attempts == 2
        assert "config:heal.cooldown" in generator.calls_for(HEAL)[1][1]
        assert _status(session, CONFIG_PATH) == TaskStatus.COMPLETED
        assert session.response.success

    def test_reopened_file_that_fails_leaves_context(self, engine_config, callbacks, good_generator_for):
        spec = ProjectSpec(
            name="Heal Plugin",
            prompt="A survival helper plugin",
            features=("/heal restores health with a configurable cooldown", "/fly grants flight"),
        )
        reads_cooldown = command_source(
            PKG, "HealCommand", "HealPlugin",
            extra='        int c = plugin.getConfig().getInt("heal.cooldown");\n',
        )
        scripts = {
            HEAL: [
                reads_cooldown,
                GenerationCapabilityError("provider timeout"),
                GenerationCapabilityError("provider timeout"),
            ],
        }
        generator = good_generator_for(spec, scripts=scripts)
        session = Pipeline(engine_config, generator, callbacks).run(spec)

        assert [p for p, *_ in generator.calls] == [MANIFEST_PATH, MAIN, HEAL, CONFIG_PATH, HEAL, HEAL, FLY]
        heal = session.plan.get(HEAL)
        assert heal.status == TaskStatus.FAILED
        assert heal.validation is None

        fly_context = generator.calls_for(FLY)[0][2]
        assert fly_context == (MANIFEST_PATH, MAIN, CONFIG_PATH)
        assert "class HealCommand" not in generator.calls_for(FLY)[0][1]
        assert _status(session, FLY) == TaskStatus.COMPLETED

        response = session.response
        assert response.validation["syntax"].message == "Passed for all 4 file(s)"
        assert not response.validation[TASK_STATUS_CHECK].passed
        assert any(issue.startswith(HEAL) for issue in response.validation[TASK_STATUS_CHECK].issues)

    @pytest.mark.parametrize("max_parallel", [1, 2])
    def test_duplicate_class_reopens_later_file(
        self, two_command_spec, callbacks, good_generator_for, max_parallel,
    ):
        config = ProjectConfig(max_parallel=max_parallel)
        scripts = {
            HEAL: [command_source(PKG, "HealCommand", "HealPlugin") + "\nclass Shared {}\n"],
            FLY: [command_source(PKG, "FlyCommand", "HealPlugin") + "\nclass Shared {}\n"],
        }
        session = Pipeline(config, good_generator_for(two_command_spec, scripts=scripts), callbacks).run(
            two_command_spec,
        )
        assert session.plan.get(HEAL).attempts == 1
        fly = session.plan.get(FLY)
        assert fly.attempts == 2
        assert fly.status == TaskStatus.COMPLETED
        assert "class Shared" not in fly.result.content
        assert session.response.validation["project_duplicate_definitions"].passed


class TestParallel:
    def test_same_result_as_sequential(self, two_command_spec, callbacks, good_generator_for):
        sequential = Pipeline(
            ProjectConfig(max_parallel=1), good_generator_for(two_command_spec), RecordingCallbacks(),
        ).run(two_command_spec)
        parallel = Pipeline(
            ProjectConfig(max_parallel=2), good_generator_for(two_command_spec), callbacks,
        ).run(two_command_spec)
        assert {f.path: f.content for f in parallel.files} == {f.path: f.content for f in sequential.files}
        assert [t.status for t in parallel.tasks] == [t.status for t in sequential.tasks]
        assert parallel.response.success

    def test_batch_shares_snapshot_without_siblings(self, two_command_spec, callbacks, good_generator_for):
        generator = good_generator_for(two_command_spec)
        Pipeline(ProjectConfig(max_parallel=2), generator, callbacks).run(two_command_spec)
        assert generator.calls_for(HEAL)[0][2] == (MANIFEST_PATH, MAIN)
        assert generator.calls_for(FLY)[0][2] == (MANIFEST_PATH, MAIN)

    def test_outcomes_applied_in_plan_order(self, two_command_spec, callbacks, good_generator_for):
        Pipeline(ProjectConfig(max_parallel=2), good_generator_for(two_command_spec), callbacks).run(
            two_command_spec,
        )
        ends = [path for kind, path in callbacks.events if kind == "end"]
        assert ends == [MANIFEST_PATH, MAIN, HEAL, FLY]


class TestCancellation:
    def test_cancel_stops_new_attempts(self, heal_spec, engine_config, callbacks, good_generator_for):
        generator = good_generator_for(heal_spec)
        pipeline = Pipeline(engine_config, generator, callbacks)
        generator.on_call = lambda path: pipeline.cancel() if path == MAIN else None
        session = pipeline.run(heal_spec)

        assert session.cancelled
        # the in-flight attempt is kept
        assert _status(session, MAIN) == TaskStatus.COMPLETED
        heal = session.plan.get(HEAL)
        assert heal.status == TaskStatus.FAILED
        assert heal.failure.reason == FailureReason.CANCELLED
        assert generator.calls_for(HEAL) == []
        assert session.response.file_count == 2

    def test_session_timeout(self, heal_spec, callbacks, good_generator_for):
        generator = good_generator_for(heal_spec)
        session = Pipeline(ProjectConfig(session_timeout=1e-9), generator, callbacks).run(heal_spec)
        assert session.cancelled
        assert generator.calls == []
        assert all(t.failure.reason == FailureReason.CANCELLED for t in session.tasks)
        assert not session.response.success
        assert any(kind == "warning" and "timed out" in msg for kind, msg in callbacks.events)


class TestSessionEnd:
    def test_callback_error_does_not_affect_result(self, heal_spec, engine_config, good_generator_for):
        class ExplodingCallbacks(RecordingCallbacks):
            def on_session_end(self, response):
                raise RuntimeError("persistence unavailable")

        session = Pipeline(engine_config, good_generator_for(heal_spec), ExplodingCallbacks()).run(heal_spec)
        assert session.response.success


class TestValidateOnly:
    def _write_tree(self, root, spec, overrides=None):
        plan = build_plan(spec)
        for task in plan.tasks:
            target = root / task.path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text((overrides or {}).get(task.path) or good_content(task, plan), encoding="utf-8")

    def test_consistent_tree_passes(self, tmp_path, heal_spec, engine_config, callbacks):
        self._write_tree(tmp_path, heal_spec)
        result = Pipeline(engine_config, callbacks=callbacks).run_validate_only(tmp_path)
        assert result.passed
        assert result.implicated == {}

    def test_broken_reference_reported(self, tmp_path, heal_spec, engine_config, callbacks):
        self._write_tree(tmp_path, heal_spec, overrides={HEAL: UNDEFINED_HELPER})
        result = Pipeline(engine_config, callbacks=callbacks).run_validate_only(tmp_path)
        assert not result.passed
        names = [c.name for c in result.checks if not c.passed]
        assert f"{HEAL}:dependency_satisfaction" in names
        assert list(result.implicated) == [HEAL]

    def test_missing_manifest(self, tmp_path, engine_config, callbacks):
        with pytest.raises(FileNotFoundError):
            Pipeline(engine_config, callbacks=callbacks).run_validate_only(tmp_path)
