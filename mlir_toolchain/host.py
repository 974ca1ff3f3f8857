# Copyright (C) 2024 Huawei Device Co., Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import platform
from typing import NamedTuple

from mlir_toolchain.utils import UnsupportedHostError

# uname -m value -> LLVM_TARGETS_TO_BUILD entry
LLVM_TARGETS = {
    'x86_64': 'X86',
    'aarch64': 'AArch64',
    'arm64': 'AArch64',
}

# Windows reports the machine in its own spelling
WINDOWS_ARCHS = {
    'AMD64': 'x86_64',
    'ARM64': 'arm64',
}


class Host(NamedTuple):
    system: str
    arch: str
    llvm_target: str

    @property
    def is_linux(self) -> bool:
        return self.system == 'linux'

    @property
    def is_darwin(self) -> bool:
        return self.system == 'macos'

    @property
    def is_windows(self) -> bool:
        return self.system == 'windows'

    def executable(self, name: str) -> str:
        return name + '.exe' if self.is_windows else name


def use_system(sysstr=None) -> str:
    sysstr = (sysstr or platform.system()).lower()
    if sysstr == 'darwin':
        return 'macos'
    if sysstr.startswith('win'):
        return 'windows'
    return 'linux'


def detect_host(sysstr=None, machine=None) -> Host:
    """Return the build host, failing for architectures we do not package."""
    system = use_system(sysstr)
    arch = machine or platform.machine()
    if system == 'windows':
        arch = WINDOWS_ARCHS.get(arch.upper(), arch)

    if arch not in LLVM_TARGETS:
        raise UnsupportedHostError('Unsupported architecture: %s. Only x86_64 and aarch64/arm64 are supported.'
                                   % arch)
    return Host(system, arch, LLVM_TARGETS[arch])
