import json
import subprocess
import tempfile
import unittest
from pathlib import Path

from repo_deployer.config import AppConfig
from repo_deployer.errors import DeployerError, RemoteDeployError
from repo_deployer.orchestrator import PipelineContext, PipelineOrchestrator, PipelineRun, StageStatus
from repo_deployer.stages import (
    ConnectivityStage,
    InputResolverStage,
    LocalPreflightStage,
    ProvisionStage,
    ProxyStage,
    RemoteDeployStage,
    SourceSyncStage,
    Stage,
    TeardownStage,
    TransferStage,
    ValidationStage,
)
from repo_deployer.utils.logging import get_logger
from repo_deployer.workflow import DeploymentWorkflow, deploy_stages, teardown_stages

from fakes import FakeRemoteHost, FakeSession
from test_gitops import _git_available, make_origin
from test_local_stages import ALL_TOOLS, StubProbe


class RecordingStage(Stage):
    def __init__(self, stage_id: str, calls: list, error: BaseException = None) -> None:
        self.stage_id = stage_id
        self.title = stage_id.replace("_", " ")
        self.calls = calls
        self.error = error

    def run(self, ctx: PipelineContext) -> str:
        self.calls.append(self.stage_id)
        if self.error is not None:
            raise self.error
        return f"{self.stage_id} done"


class LeakyStage(Stage):
    stage_id = "leaky"
    title = "Leaky"

    def run(self, ctx: PipelineContext) -> str:
        get_logger("repo_deployer.stages.leaky").info(
            "cloning https://%s@example/app.git", ctx.require_request().credential
        )
        return "logged"


class PipelineOrchestratorTests(unittest.TestCase):
    def _run(self, stages, log_path=None) -> PipelineRun:
        ctx = PipelineContext(config=AppConfig())
        return PipelineOrchestrator(stages).run(ctx, PipelineRun("r1", "deploy", log_path))

    def test_stages_run_in_order(self) -> None:
        calls = []
        run = self._run([RecordingStage(name, calls) for name in ("a", "b", "c")])
        self.assertEqual(calls, ["a", "b", "c"])
        self.assertTrue(run.succeeded)
        self.assertEqual([o.message for o in run.outcomes], ["a done", "b done", "c done"])

    def test_failure_halts_and_skips_the_rest(self) -> None:
        calls = []
        stages = [
            RecordingStage("a", calls),
            RecordingStage("b", calls, RemoteDeployError("build failed")),
            RecordingStage("c", calls),
            RecordingStage("d", calls),
        ]
        orchestrator = PipelineOrchestrator(stages)
        run = orchestrator.run(PipelineContext(config=AppConfig()), PipelineRun("r1", "deploy"))

        self.assertEqual(calls, ["a", "b"])
        self.assertFalse(run.succeeded)
        self.assertEqual(
            [o.status for o in run.outcomes],
            [StageStatus.SUCCESS, StageStatus.FAILED, StageStatus.SKIPPED, StageStatus.SKIPPED],
        )
        self.assertEqual(run.failure.stage_id, "b")
        self.assertEqual(run.failure.message, "build failed")
        self.assertEqual(orchestrator.error.stage, "b")

    def test_unexpected_exception_is_a_failure(self) -> None:
        calls = []
        orchestrator = PipelineOrchestrator([RecordingStage("a", calls, KeyError("boom")), RecordingStage("b", calls)])
        run = orchestrator.run(PipelineContext(config=AppConfig()), PipelineRun("r1", "deploy"))
        self.assertEqual(run.status_of("a"), StageStatus.FAILED)
        self.assertEqual(run.status_of("b"), StageStatus.SKIPPED)
        self.assertIsInstance(orchestrator.error, DeployerError)

    def test_keyboard_interrupt_marks_run_interrupted(self) -> None:
        calls = []
        run = self._run([RecordingStage("a", calls, KeyboardInterrupt()), RecordingStage("b", calls)])
        self.assertTrue(run.interrupted)
        self.assertFalse(run.succeeded)
        self.assertEqual(run.failure.message, "interrupted")
        self.assertEqual(run.status_of("b"), StageStatus.SKIPPED)

    def test_finished_run_rejects_new_outcomes(self) -> None:
        run = self._run([RecordingStage("a", [])])
        with self.assertRaises(RuntimeError):
            run.record(run.outcomes[0])

    def test_summary_written_next_to_log(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "deploy_r1.log"
            self._run([RecordingStage("a", []), RecordingStage("b", [], RemoteDeployError("nope"))], log_path)
            summary = json.loads(log_path.with_suffix(".json").read_text(encoding="utf-8"))
        self.assertEqual(summary["run_id"], "r1")
        self.assertEqual([s["status"] for s in summary["stages"]], ["success", "failed"])


class WorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.config = AppConfig()
        self.config.deployment.log_dir = str(self.root / "logs")
        self.config.deployment.workspace_root = str(self.root / "workspace")
        self.config.deployment.interactive = False

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_default_stage_lists(self) -> None:
        self.assertEqual(
            [s.stage_id for s in deploy_stages()],
            [
                "resolve_inputs",
                "local_preflight",
                "source_sync",
                "connectivity",
                "provision",
                "transfer",
                "remote_deploy",
                "proxy",
                "validate",
            ],
        )
        self.assertEqual(
            [s.stage_id for s in teardown_stages()],
            ["resolve_inputs", "local_preflight", "connectivity", "teardown"],
        )

    def test_missing_inputs_fail_first_stage_and_write_log(self) -> None:
        workflow = DeploymentWorkflow(self.config)
        stages = [InputResolverStage(environ={}), RecordingStage("later", [])]
        run = workflow.run_deploy({"repo_url": "https://example/app.git"}, stages=stages)

        self.assertEqual(run.failure.stage_id, "resolve_inputs")
        self.assertIn("user, host, key_path, app_port", run.failure.message)
        self.assertEqual(run.status_of("later"), StageStatus.SKIPPED)
        self.assertTrue(run.log_path.exists())
        self.assertTrue(run.log_path.name.startswith("deploy_"))
        self.assertIn("Missing required input", run.log_path.read_text(encoding="utf-8"))

    def test_credential_never_reaches_the_log(self) -> None:
        workflow = DeploymentWorkflow(self.config)
        raw = {
            "repo_url": "https://example/app.git",
            "host": "203.0.113.5",
            "user": "deploy",
            "key_path": "/tmp/id_test",
            "app_port": "3000",
        }
        stages = [InputResolverStage(environ={"PAT": "s3cr3t-token"}), LeakyStage()]
        run = workflow.run_deploy(raw, stages=stages)

        self.assertTrue(run.succeeded)
        text = run.log_path.read_text(encoding="utf-8")
        self.assertIn("cloning https://***@example/app.git", text)
        self.assertNotIn("s3cr3t-token", text)


class EndToEndTests(unittest.TestCase):
    """Deploy then tear down against an in-memory host and a local git origin."""

    def setUp(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.origin = make_origin(self.root)
        self.host = FakeRemoteHost()
        self.config = AppConfig()
        self.config.deployment.log_dir = str(self.root / "logs")
        self.config.deployment.workspace_root = str(self.root / "workspace")
        self.config.deployment.interactive = False
        self.raw = {
            "repo_url": str(self.origin),
            "host": "203.0.113.5",
            "user": "deploy",
            "key_path": "/tmp/id_test",
            "app_port": "3000",
        }

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _transfer(self, command, **kwargs):
        # Mirror the working copy into the fake host, like rsync would.
        source = Path(command[-2].rstrip("/"))
        remote_dir = command[-1].split(":", 1)[1].rstrip("/")
        for path in source.iterdir():
            if path.is_file():
                self.host.files[f"{remote_dir}/{path.name}"] = path.read_text(encoding="utf-8")
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    def _workflow(self) -> DeploymentWorkflow:
        return DeploymentWorkflow(self.config, session_factory=lambda request: FakeSession(self.host))

    def _deploy(self) -> PipelineRun:
        stages = [
            InputResolverStage(environ={}),
            LocalPreflightStage(StubProbe(ALL_TOOLS)),
            SourceSyncStage(),
            ConnectivityStage(),
            ProvisionStage(),
            TransferStage(runner=self._transfer),
            RemoteDeployStage(),
            ProxyStage(),
            ValidationStage(http_get=lambda url, timeout=None: type("Response", (), {"status_code": 200})()),
        ]
        return self._workflow().run_deploy(self.raw, stages=stages)

    def test_deploy_twice_then_teardown(self) -> None:
        first = self._deploy()
        self.assertTrue(first.succeeded, first.failure)
        self.assertEqual([c.name for c in self.host.running_containers()], ["origin_service"])
        self.assertIn("127.0.0.1:3000", self.host.enabled_rule("origin.conf"))
        self.assertIn("/home/deploy/origin/Dockerfile", self.host.files)

        second = self._deploy()
        self.assertTrue(second.succeeded, second.failure)
        self.assertEqual(len(self.host.running_containers()), 1)

        stages = [
            InputResolverStage(environ={}),
            LocalPreflightStage(StubProbe(ALL_TOOLS)),
            ConnectivityStage(),
            TeardownStage(),
        ]
        teardown = self._workflow().run_teardown(self.raw, stages=stages)
        self.assertTrue(teardown.succeeded, teardown.failure)
        self.assertEqual(self.host.containers, {})
        self.assertIsNone(self.host.enabled_rule("origin.conf"))
        self.assertNotIn("/home/deploy/origin", self.host.dirs)
        self.assertTrue(teardown.log_path.name.startswith("teardown_"))

    def test_failed_proxy_stage_skips_validation(self) -> None:
        self.host.nginx_rejects_candidate = True
        run = self._deploy()
        self.assertEqual(run.failure.stage_id, "proxy")
        self.assertEqual(run.status_of("validate"), StageStatus.SKIPPED)
        self.assertEqual(len(self.host.running_containers()), 1)


if __name__ == "__main__":
    unittest.main()
