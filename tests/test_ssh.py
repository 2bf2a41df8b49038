import socket
import unittest

import paramiko

from repo_deployer.errors import ConnectivityError
from repo_deployer.models import ProjectIdentity
from repo_deployer.ssh import RemoteProbe, RemoteScript, SSHConnectionError, SSHCredentials, SSHSession
from repo_deployer.ssh.probe import parse_container_lines


class FakeChannel:
    """Channel whose command only exits once all of its output has been read.

    Mirrors a flow-controlled SSH channel: a remote command that writes more
    than the window holds blocks until the client consumes the pending data.
    """

    def __init__(self, stdout: str, stderr: str = "", status: int = 0) -> None:
        self._stdout = bytearray(stdout.encode("utf-8"))
        self._stderr = bytearray(stderr.encode("utf-8"))
        self._status = status
        self.closed = False

    def recv_ready(self) -> bool:
        return bool(self._stdout)

    def recv_stderr_ready(self) -> bool:
        return bool(self._stderr)

    def recv(self, size: int) -> bytes:
        chunk = bytes(self._stdout[:size])
        del self._stdout[:size]
        return chunk

    def recv_stderr(self, size: int) -> bytes:
        chunk = bytes(self._stderr[:size])
        del self._stderr[:size]
        return chunk

    def exit_status_ready(self) -> bool:
        return not self._stdout and not self._stderr

    def recv_exit_status(self) -> int:
        assert self.exit_status_ready(), "command still blocked on unread output"
        return self._status

    def close(self) -> None:
        self.closed = True


class FakeStream:
    def __init__(self, channel: FakeChannel) -> None:
        self.channel = channel


class FakeSSHClient:
    # command -> (stdout, stderr, exit status)
    responses: dict = {}
    connect_error = None

    def __init__(self) -> None:
        self.connected = False
        self.closed = False
        self.commands: list[str] = []

    def set_missing_host_key_policy(self, policy) -> None:
        self.policy = policy

    def load_system_host_keys(self) -> None:
        self.system_keys = True

    def connect(self, **kwargs) -> None:
        self.kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def exec_command(self, command: str, timeout=None):
        self.commands.append(command)
        stdout, stderr, status = self.responses.get(command, ("ok", "", 0))
        channel = FakeChannel(stdout, stderr, status)
        return (None, FakeStream(channel), FakeStream(channel))

    def close(self) -> None:
        self.closed = True


def _client_class(responses=None, connect_error=None):
    return type("Client", (FakeSSHClient,), {"responses": responses or {}, "connect_error": connect_error})


def _credentials(**kwargs) -> SSHCredentials:
    return SSHCredentials(host="example.com", username="deploy", key_path="~/.ssh/id_ed25519", **kwargs)


class SSHSessionTests(unittest.TestCase):
    def test_run_command_uses_client_factory(self) -> None:
        session = SSHSession(_credentials(), client_factory=_client_class())
        with session:
            result = session.run("echo test")
            client = session._client
        self.assertTrue(result.ok)
        self.assertEqual(result.stdout, "ok")
        self.assertTrue(client.closed)
        self.assertFalse(session.connected)

    def test_run_drains_large_output_from_both_streams(self) -> None:
        build_log = "step output line\n" * 300_000
        responses = {"docker build .": (build_log, "warning\n" * 50_000, 0)}
        with SSHSession(_credentials(), client_factory=_client_class(responses)) as session:
            result = session.run("docker build .")
        self.assertTrue(result.ok)
        self.assertEqual(len(result.stdout), len(build_log.strip()))
        self.assertTrue(result.stderr.startswith("warning"))

    def test_run_reports_failed_exit_status(self) -> None:
        responses = {"false": ("", "boom", 3)}
        with SSHSession(_credentials(), client_factory=_client_class(responses)) as session:
            result = session.run("false")
        self.assertFalse(result.ok)
        self.assertEqual(result.exit_status, 3)
        self.assertEqual(result.detail, "boom")

    def test_connect_uses_key_only_with_bounded_timeouts(self) -> None:
        session = SSHSession(_credentials(), client_factory=_client_class())
        session.connect()
        kwargs = session._client.kwargs
        self.assertFalse(kwargs["look_for_keys"])
        self.assertFalse(kwargs["allow_agent"])
        self.assertEqual(kwargs["timeout"], 10)
        self.assertEqual(kwargs["auth_timeout"], 10)
        self.assertFalse(kwargs["key_filename"].startswith("~"))
        self.assertIsInstance(session._client.policy, paramiko.AutoAddPolicy)
        session.close()

    def test_strict_host_keys_reject_unknown(self) -> None:
        session = SSHSession(_credentials(strict_host_key_checking=True), client_factory=_client_class())
        session.connect()
        self.assertIsInstance(session._client.policy, paramiko.RejectPolicy)
        session.close()

    def test_connect_errors_are_classified(self) -> None:
        cases = [
            (paramiko.AuthenticationException("denied"), ConnectivityError.AUTH),
            (socket.timeout("timed out"), ConnectivityError.TIMEOUT),
            (ConnectionRefusedError(111, "refused"), ConnectivityError.UNREACHABLE),
            (paramiko.SSHException("banner"), ConnectivityError.UNREACHABLE),
        ]
        for error, reason in cases:
            with self.subTest(reason=reason, error=type(error).__name__):
                session = SSHSession(_credentials(), client_factory=_client_class(connect_error=error))
                with self.assertRaises(SSHConnectionError) as caught:
                    session.connect()
                self.assertEqual(caught.exception.reason, reason)
                self.assertIsInstance(caught.exception, ConnectivityError)
                self.assertFalse(session.connected)

    def test_run_script_stops_at_first_fatal_failure(self) -> None:
        responses = {
            "advisory-fails": ("", "nope", 1),
            "fatal-fails": ("", "boom", 2),
        }
        script = (
            RemoteScript(name="demo")
            .advisory("advisory-fails", "Advisory step")
            .fatal("fatal-ok", "First fatal step")
            .fatal("fatal-fails", "Second fatal step")
            .advisory("never-runs", "Unreached step")
        )
        with SSHSession(_credentials(), client_factory=_client_class(responses)) as session:
            result = session.run_script(script)
            commands = list(session._client.commands)

        self.assertFalse(result.ok)
        self.assertFalse(result.completed)
        self.assertEqual(result.failed_fatal.step.description, "Second fatal step")
        self.assertEqual(result.failed_fatal.result.detail, "boom")
        self.assertEqual([o.step.description for o in result.advisory_failures], ["Advisory step"])
        self.assertNotIn("never-runs", commands)

    def test_advisory_failures_do_not_fail_script(self) -> None:
        script = RemoteScript(name="demo").advisory("advisory-fails", "Advisory step").fatal("fatal-ok", "Fatal")
        with SSHSession(_credentials(), client_factory=_client_class({"advisory-fails": ("", "", 1)})) as session:
            result = session.run_script(script)
        self.assertTrue(result.ok)
        self.assertTrue(result.completed)
        self.assertEqual(len(result.advisory_failures), 1)

    def test_ssh_options_for_cli_tools(self) -> None:
        options = _credentials(port=2222).ssh_options()
        self.assertEqual(options[0], "-i")
        self.assertIn("Port=2222", options)
        self.assertIn("BatchMode=yes", options)
        self.assertIn("StrictHostKeyChecking=no", options)


class RemoteProbeTests(unittest.TestCase):
    def test_remote_probe_collects_fields(self) -> None:
        probe = RemoteProbe()

        class StubSession:
            def __init__(self) -> None:
                self.commands = []

            def run(self, command: str):
                self.commands.append(command)
                return type(
                    "Result",
                    (),
                    {
                        "stdout": command.upper(),
                        "stderr": "",
                        "ok": command.startswith("command -v apt-get"),
                        "exit_status": 0,
                    },
                )()

        session = StubSession()
        facts = probe.collect(session)  # type: ignore[arg-type]
        self.assertEqual(facts.hostname, "HOSTNAME")
        self.assertEqual(facts.package_family, "debian")
        self.assertTrue(session.commands)

    def test_parse_container_lines(self) -> None:
        output = "\n".join(
            [
                "abc\tapp_service\tapp:latest\tUp 5 minutes\t",
                "def\tapp-web-1\tapp-web\tUp 1 minute (healthy)\tapp",
                "",
                "garbage line",
            ]
        )
        containers = parse_container_lines(output)
        self.assertEqual([c.name for c in containers], ["app_service", "app-web-1"])
        self.assertEqual(containers[1].compose_project, "app")
        identity = ProjectIdentity("app")
        self.assertTrue(all(c.belongs_to(identity) for c in containers))


if __name__ == "__main__":
    unittest.main()
