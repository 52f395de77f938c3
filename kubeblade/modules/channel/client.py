"""
Remote execution channel.

Runs blade commands inside the tool agent container through the pod exec
sub-resource and decodes the agent's JSON reply:

    {"code": 200, "success": true, "result": "<uid>"}
    {"code": 47000, "success": false, "error": "<message>"}
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream

from kubeblade.modules.api import RemoteOperationFailed, TargetVanished

logger = logging.getLogger(__name__)


@dataclass
class ExecResult:
    """Decoded reply of the tool agent."""
    success: bool
    result: str = ""
    error: str = ""
    code: int = 0


def decode_response(output: str, pod_name: str) -> ExecResult:
    """
    Decode the output of one blade invocation.

    Args:
        output: Raw stdout or stderr of the command
        pod_name: Pod the command ran in, used in error text

    Returns:
        ExecResult; undecodable output becomes a failure carrying the raw text
    """
    text = (output or "").strip()
    if not text:
        return ExecResult(
            success=False,
            error=f"cannot get output of pods/{pod_name}/exec, maybe kubelet cannot be accessed",
        )
    try:
        payload = json.loads(text)
    except ValueError:
        return ExecResult(success=False, error=text)
    if not isinstance(payload, dict):
        return ExecResult(success=False, error=text)

    result = payload.get("result")
    if result is None:
        result = ""
    elif not isinstance(result, str):
        result = json.dumps(result)
    try:
        code = int(payload.get("code") or 0)
    except (TypeError, ValueError):
        code = 0
    if payload.get("success"):
        return ExecResult(success=True, result=result, code=code)
    return ExecResult(success=False, result=result, error=payload.get("error") or text, code=code)


def _is_not_found(e: ApiException) -> bool:
    # Websocket handshake failures surface with status 0 and the HTTP status in the reason
    return e.status == 404 or "404" in str(e.reason or "")


class ExecChannel:
    """Exec commands in pods through the Kubernetes API server."""

    def __init__(self, core_v1: Optional[client.CoreV1Api] = None, shell: str = "/bin/sh"):
        self.core_v1 = core_v1 or client.CoreV1Api()
        self.shell = shell

    def exec(self, pod_name: str, namespace: str, container: str, command: str, timeout: int = 30) -> ExecResult:
        """
        Run a command in a container and decode the agent reply.

        Raises:
            TargetVanished: If the pod does not exist
            RemoteOperationFailed: If the exec transport fails or times out
        """
        logger.debug(f"Exec in {namespace}/{pod_name}/{container}: {command}")
        try:
            resp = stream(
                self.core_v1.connect_get_namespaced_pod_exec,
                pod_name,
                namespace,
                container=container,
                command=[self.shell, "-c", command],
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
        except ApiException as e:
            if _is_not_found(e):
                raise TargetVanished(f"pods/{pod_name} in {namespace} not found")
            raise RemoteOperationFailed(f"exec in pods/{pod_name} failed: {e.reason}")

        try:
            resp.run_forever(timeout=timeout)
            if resp.is_open():
                raise RemoteOperationFailed(f"exec in pods/{pod_name} timed out after {timeout}s")
            stdout = resp.read_stdout() or ""
            stderr = resp.read_stderr() or ""
        except RemoteOperationFailed:
            raise
        except Exception as e:
            raise RemoteOperationFailed(f"exec in pods/{pod_name} failed: {e}")
        finally:
            resp.close()

        output = stderr if stderr.strip() else stdout
        return decode_response(output, pod_name)
