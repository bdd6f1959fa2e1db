from __future__ import annotations

import json

from lib_layered_env.domain.descriptor import EnvironmentDescriptor
from lib_layered_env.domain.model import Package, StartupAction, TargetPlatform


def make_descriptor() -> EnvironmentDescriptor:
    return EnvironmentDescriptor(
        output="default",
        platform=TargetPlatform.parse("x86_64-linux"),
        dependencies=(Package("eza", "0.18", "/s/eza/lib"), Package("fd", "9", "/s/fd/lib")),
        env={"LD_LIBRARY_PATH": "/s/eza/lib:/s/fd/lib", "GREETING": "hello world"},
        startup=(StartupAction("alias:ls", "alias ls=eza"), StartupAction("alias:find", "alias find=fd")),
    )


def test_to_json_preserves_declaration_order() -> None:
    payload = json.loads(make_descriptor().to_json())
    assert [dep["name"] for dep in payload["dependencies"]] == ["eza", "fd"]
    assert list(payload["env"]) == ["LD_LIBRARY_PATH", "GREETING"]
    assert [action["name"] for action in payload["startup"]] == ["alias:ls", "alias:find"]


def test_equal_descriptors_serialise_identically() -> None:
    assert make_descriptor().to_json() == make_descriptor().to_json()
    assert make_descriptor() == make_descriptor()


def test_shell_hook_quotes_values_and_keeps_actions_verbatim() -> None:
    hook = make_descriptor().shell_hook().splitlines()
    assert hook == [
        "export LD_LIBRARY_PATH=/s/eza/lib:/s/fd/lib",
        "export GREETING='hello world'",
        "alias ls=eza",
        "alias find=fd",
    ]


def test_as_dict_is_a_mutable_copy() -> None:
    descriptor = make_descriptor()
    exported = descriptor.as_dict()
    exported["env"]["LD_LIBRARY_PATH"] = "changed"
    assert descriptor.get("LD_LIBRARY_PATH") == "/s/eza/lib:/s/fd/lib"
