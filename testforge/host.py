from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from typing import Mapping

_GO_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
}

_CI_VARS = ("CI", "JENKINS_URL", "BUILD_NUMBER")


@dataclass(frozen=True)
class HostInfo:
    os: str
    arch: str
    ci: bool

    @classmethod
    def current(cls, environ: Mapping[str, str] | None = None) -> HostInfo:
        env = os.environ if environ is None else environ
        arch = env.get("GOARCH") or _GO_ARCH.get(
            platform.machine().lower(), platform.machine().lower()
        )
        ci = any(env.get(var) for var in _CI_VARS)
        return cls(os=platform.system().lower(), arch=arch, ci=ci)
