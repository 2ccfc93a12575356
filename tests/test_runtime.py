from types import SimpleNamespace
from unittest import mock

import pytest
from docker.errors import APIError, ImageNotFound, NotFound

from replbox.errors import AdapterError
from replbox.models import ExecResponse, RuntimeType
from replbox.runtime import DockerRuntime


@pytest.fixture
def docker_client():
    return mock.MagicMock()


@pytest.fixture
def docker_runtime(docker_client):
    return DockerRuntime(runtime=RuntimeType.RUNSC, docker_client=docker_client)


class TestDockerRuntime:
    async def test_create_container(self, docker_runtime, docker_client):
        docker_client.containers.create.return_value = SimpleNamespace(id="c0ffee")

        assert await docker_runtime.create_container("python:3") == "c0ffee"

        args, kwargs = docker_client.containers.create.call_args
        assert args == ("python:3",)
        assert kwargs["runtime"] == "runsc"
        assert kwargs["working_dir"] == "/workspace"
        assert kwargs["security_opt"] == ["no-new-privileges"]
        assert kwargs["labels"] == {"replbox": "true"}

    async def test_create_pulls_missing_image(self, docker_runtime, docker_client):
        docker_client.containers.create.side_effect = [
            ImageNotFound("no such image"),
            SimpleNamespace(id="c0ffee"),
        ]

        assert await docker_runtime.create_container("node:18-alpine") == "c0ffee"
        docker_client.images.pull.assert_called_once_with("node:18-alpine")

    async def test_create_error_is_wrapped(self, docker_runtime, docker_client):
        docker_client.containers.create.side_effect = APIError("boom")

        with pytest.raises(AdapterError, match="python:3"):
            await docker_runtime.create_container("python:3")

    async def test_start_container(self, docker_runtime, docker_client):
        await docker_runtime.start_container("c0ffee")

        docker_client.containers.get.assert_called_once_with("c0ffee")
        docker_client.containers.get.return_value.start.assert_called_once_with()

    async def test_start_missing_container(self, docker_runtime, docker_client):
        docker_client.containers.get.side_effect = NotFound("gone")

        with pytest.raises(AdapterError):
            await docker_runtime.start_container("c0ffee")

    async def test_exec_demultiplexes_output(self, docker_runtime, docker_client):
        container = docker_client.containers.get.return_value
        container.exec_run.return_value = SimpleNamespace(
            exit_code=1, output=(b"out\n", b"Traceback\n")
        )

        result = await docker_runtime.exec("c0ffee", "python file.py;")

        assert result == ExecResponse(exit_code=1, stdout="out\n", stderr="Traceback\n")
        container.exec_run.assert_called_once_with(
            ["sh", "-c", "python file.py;"], workdir="/workspace", demux=True
        )

    async def test_exec_with_timeout_runs_under_timeout(self, docker_runtime, docker_client):
        container = docker_client.containers.get.return_value
        container.exec_run.return_value = SimpleNamespace(exit_code=0, output=(b"2\n", None))

        result = await docker_runtime.exec("c0ffee", "python file.py;", timeout=2.5)

        assert result == ExecResponse(exit_code=0, stdout="2\n", stderr="", timed_out=False)
        container.exec_run.assert_called_once_with(
            ["timeout", "-s", "KILL", "3", "sh", "-c", "python file.py;"],
            workdir="/workspace",
            demux=True,
        )

    @pytest.mark.parametrize("exit_code", [124, 137])
    async def test_exec_killed_by_timeout(self, docker_runtime, docker_client, exit_code):
        container = docker_client.containers.get.return_value
        container.exec_run.return_value = SimpleNamespace(
            exit_code=exit_code, output=(b"partial", None)
        )

        result = await docker_runtime.exec("c0ffee", "while true; do :; done", timeout=1)

        assert result.timed_out
        assert result.stdout == "partial"

    async def test_subsecond_timeout_rounds_up(self, docker_runtime, docker_client):
        container = docker_client.containers.get.return_value
        container.exec_run.return_value = SimpleNamespace(exit_code=0, output=None)

        await docker_runtime.exec("c0ffee", "true", timeout=0.2)

        argv = container.exec_run.call_args[0][0]
        assert argv[:4] == ["timeout", "-s", "KILL", "1"]

    async def test_exit_137_without_timeout_is_not_a_timeout(self, docker_runtime, docker_client):
        container = docker_client.containers.get.return_value
        container.exec_run.return_value = SimpleNamespace(exit_code=137, output=(None, None))

        result = await docker_runtime.exec("c0ffee", "kill -9 $$")
        assert not result.timed_out

    async def test_exec_without_output(self, docker_runtime, docker_client):
        container = docker_client.containers.get.return_value
        container.exec_run.return_value = SimpleNamespace(exit_code=0, output=(None, None))

        result = await docker_runtime.exec("c0ffee", "touch file.py")
        assert result == ExecResponse(exit_code=0, stdout="", stderr="")

    async def test_exec_error_is_wrapped(self, docker_runtime, docker_client):
        container = docker_client.containers.get.return_value
        container.exec_run.side_effect = APIError("container is not running")

        with pytest.raises(AdapterError, match="not running"):
            await docker_runtime.exec("c0ffee", "true")

    async def test_kill_removes_container(self, docker_runtime, docker_client):
        await docker_runtime.kill("c0ffee")

        docker_client.containers.get.return_value.remove.assert_called_once_with(force=True)

    async def test_kill_already_gone(self, docker_runtime, docker_client):
        docker_client.containers.get.side_effect = NotFound("gone")

        await docker_runtime.kill("c0ffee")

    async def test_kill_error_is_wrapped(self, docker_runtime, docker_client):
        docker_client.containers.get.return_value.remove.side_effect = APIError("busy")

        with pytest.raises(AdapterError):
            await docker_runtime.kill("c0ffee")

    async def test_list_containers_by_label(self, docker_runtime, docker_client):
        docker_client.containers.list.return_value = [
            SimpleNamespace(id="aaa"),
            SimpleNamespace(id="bbb"),
        ]

        assert await docker_runtime.list_containers() == ["aaa", "bbb"]
        docker_client.containers.list.assert_called_once_with(
            all=True, filters={"label": "replbox=true"}
        )

    async def test_list_containers_error_is_wrapped(self, docker_runtime, docker_client):
        docker_client.containers.list.side_effect = APIError("daemon down")

        with pytest.raises(AdapterError):
            await docker_runtime.list_containers()
