"""
Channel Module - Black Box Interface

Purpose: Execute blade commands in the tool agent pods
Interface: ExecChannel.exec(), decode_response(), ExecResult
Hidden: Websocket streaming, timeouts, agent reply format

Raises TargetVanished for missing pods so callers can treat them as gone.
"""

from .client import ExecChannel, ExecResult, decode_response

__all__ = ["ExecChannel", "ExecResult", "decode_response"]
